"""Unit tests for CSV export and alert e-mails."""

import pytest

from dropout_monitor import mailer
from dropout_monitor.email_templates import (
    DEFAULT_ALERT_SUBJECT,
    format_trend,
    generate_alert_email,
    generate_student_table,
)
from dropout_monitor.export import EXPORT_COLUMNS, build_results_csv
from dropout_monitor.mailer import send_alert_email, validate_email
from dropout_monitor.models import MergedStudentRecord
from dropout_monitor.risk import process_data


@pytest.fixture
def results():
    """Processed records: one Safe, one At Risk, one High Risk."""
    return process_data([
        MergedStudentRecord(student_id='S1', attended=90, total_classes=100, test1=80, test2=70, test3=60),
        MergedStudentRecord(student_id='S2', attended=70, total_classes=100, test1=70, test2=80, test3=90, fee_pending=150),
        MergedStudentRecord(student_id='S3', attended=40, total_classes=100, test1=30, test2=30, test3=30),
    ])


def test_build_results_csv(results):
    """Only at-risk students are exported, with two-decimal numbers."""
    lines = build_results_csv(results).strip().split('\n')

    assert lines[0] == ','.join(EXPORT_COLUMNS)
    assert lines[1] == 'S2,70.00,80.00,20.00,150.00,At Risk'
    assert lines[2] == 'S3,40.00,30.00,0.00,0.00,High Risk'
    assert len(lines) == 3


def test_build_results_csv_all_students(results):
    """All students can be exported."""
    lines = build_results_csv(results, at_risk_only=False).strip().split('\n')

    assert len(lines) == 4
    assert lines[1] == 'S1,90.00,70.00,-20.00,0.00,Safe'


def test_build_results_csv_empty():
    """No students gives a header-only file."""
    assert build_results_csv([]) == ','.join(EXPORT_COLUMNS) + '\n'


def test_format_trend():
    """Trends carry an explicit sign."""
    assert format_trend(5.0) == '+5.00'
    assert format_trend(0.0) == '+0.00'
    assert format_trend(-20.0) == '-20.00'


def test_generate_student_table(results):
    """The table lists every student with a risk badge."""
    html = generate_student_table(results[1:])

    assert 'S2' in html
    assert 'S3' in html
    assert '70.00%' in html
    assert '+20.00' in html
    assert '$150.00' in html
    assert 'color:#dc2626' in html
    assert 'color:#d97706' in html


def test_generate_student_table_empty():
    """An empty list renders a placeholder."""
    assert generate_student_table([]) == '<p>No at-risk students found.</p>'


def test_generate_alert_email(results):
    """Default and custom subjects."""
    assert generate_alert_email(results)['subject'] == DEFAULT_ALERT_SUBJECT
    assert generate_alert_email(results, 'Weekly alert')['subject'] == 'Weekly alert'


def test_validate_email():
    """Test e-mail address validation."""
    assert validate_email('mentor@school.edu')
    assert validate_email(' mentor@school.edu ')
    assert not validate_email('mentor@school')
    assert not validate_email('mentor school@edu.org')
    assert not validate_email('')


def test_send_alert_email_requires_credentials(monkeypatch):
    """Sending fails without SMTP credentials."""
    monkeypatch.delenv('EMAIL_USER', raising=False)
    monkeypatch.delenv('EMAIL_PASS', raising=False)

    with pytest.raises(RuntimeError):
        send_alert_email(['mentor@school.edu'], 'Alert', '<p>hi</p>')


def test_send_alert_email(monkeypatch):
    """The mail is sent through SMTP with STARTTLS and login."""
    sent = {}

    class FakeSMTP:
        def __init__(self, host, port, timeout=None):
            sent['host'] = (host, port)

        def __enter__(self):
            return self

        def __exit__(self, *args):
            return False

        def starttls(self):
            sent['tls'] = True

        def login(self, user, password):
            sent['login'] = (user, password)

        def sendmail(self, sender, recipients, message):
            sent['mail'] = (sender, recipients, message)

    monkeypatch.setenv('EMAIL_USER', 'alerts@school.edu')
    monkeypatch.setenv('EMAIL_PASS', 'secret')
    monkeypatch.setattr(mailer.smtplib, 'SMTP', FakeSMTP)

    message_id = send_alert_email(['a@school.edu', 'b@school.edu'], 'Alert', '<p>hi</p>')

    assert message_id
    assert sent['tls'] is True
    assert sent['login'] == ('alerts@school.edu', 'secret')
    sender, recipients, message = sent['mail']
    assert sender == 'alerts@school.edu'
    assert recipients == ['a@school.edu', 'b@school.edu']
    assert 'Subject: Alert' in message
