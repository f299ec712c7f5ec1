"""SMTP delivery of alert e-mails."""

import logging
import os
import re
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import make_msgid
from typing import Dict, Optional, Sequence

from dropout_monitor.config import SMTP_HOST, SMTP_PORT

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')


def validate_email(address: str) -> bool:
    """Loose e-mail address check."""
    return bool(EMAIL_RE.match(address.strip()))


def get_smtp_credentials() -> Optional[Dict[str, str]]:
    """SMTP user and password from the environment, or None when unset."""
    user = os.getenv('EMAIL_USER')
    password = os.getenv('EMAIL_PASS')
    if not user or not password:
        return None
    return {'user': user, 'password': password}


def send_alert_email(recipients: Sequence[str], subject: str, html: str) -> str:
    """
    Send an HTML e-mail through the configured SMTP server.

    Args:
        recipients: Destination addresses
        subject: Mail subject
        html: HTML body

    Returns:
        The Message-ID of the sent mail
    """
    credentials = get_smtp_credentials()
    if credentials is None:
        raise RuntimeError("EMAIL_USER and EMAIL_PASS are not set")

    msg = MIMEMultipart('alternative')
    msg['From'] = credentials['user']
    msg['To'] = ', '.join(recipients)
    msg['Subject'] = subject
    msg['Message-ID'] = make_msgid()
    msg.attach(MIMEText(html, 'html', 'utf-8'))

    with smtplib.SMTP(SMTP_HOST, SMTP_PORT, timeout=30) as server:
        server.starttls()
        server.login(credentials['user'], credentials['password'])
        server.sendmail(credentials['user'], list(recipients), msg.as_string())

    logger.info("Alert e-mail sent to %d recipient(s)", len(recipients))
    return msg['Message-ID']
