"""Configuration for the Student Dropout Risk Monitor."""

import os
from typing import Dict, List, Optional, Tuple

from dotenv import load_dotenv
from pydantic import BaseModel, Field

# Load environment variables
load_dotenv()


class TierThreshold(BaseModel):
    """Attendance and score cut-offs below which a tier applies."""
    attendance: float
    score: float


class RiskThresholds(BaseModel):
    """Risk tier thresholds, most severe tier first."""
    high_risk: TierThreshold = Field(default_factory=lambda: TierThreshold(attendance=60.0, score=35.0))
    at_risk: TierThreshold = Field(default_factory=lambda: TierThreshold(attendance=75.0, score=50.0))


DEFAULT_RISK_THRESHOLDS = RiskThresholds()

DEFAULT_EXPECTED_COLUMNS: Dict[str, List[str]] = {
    'attendance': ['student_id', 'attended', 'total_classes'],
    'marks': ['student_id', 'test1', 'test2', 'test3'],
    'fees': ['student_id', 'fee_pending'],
}

DATASET_TYPES: Tuple[str, ...] = tuple(DEFAULT_EXPECTED_COLUMNS)

_THRESHOLD_KEYS = {
    'high_risk_attendance': ('high_risk', 'attendance'),
    'high_risk_score': ('high_risk', 'score'),
    'at_risk_attendance': ('at_risk', 'attendance'),
    'at_risk_score': ('at_risk', 'score'),
}


def load_risk_thresholds(raw: Optional[str] = None) -> RiskThresholds:
    """
    Parse risk thresholds from a 'key:value,key:value' string.

    Keys are high_risk_attendance, high_risk_score, at_risk_attendance and
    at_risk_score. Keys that are left out keep their default value.

    Args:
        raw: Threshold string, e.g. 'high_risk_attendance:50,at_risk_score:55'

    Returns:
        RiskThresholds with overrides applied
    """
    values = DEFAULT_RISK_THRESHOLDS.model_dump()
    if not raw or not raw.strip():
        return RiskThresholds(**values)

    for item in raw.split(','):
        if not item.strip():
            continue
        key, sep, value = item.partition(':')
        key = key.strip().lower()
        if not sep or key not in _THRESHOLD_KEYS:
            raise ValueError(f"Invalid risk threshold entry: '{item.strip()}'")
        tier, field = _THRESHOLD_KEYS[key]
        values[tier][field] = float(value.strip())

    return RiskThresholds(**values)


def load_supported_file_types(raw: Optional[str] = None) -> Tuple[str, ...]:
    """Parse a comma-separated list of file extensions ('.xlsx,.csv')."""
    if not raw or not raw.strip():
        return ('.xlsx', '.csv')
    extensions = []
    for ext in raw.split(','):
        ext = ext.strip().lower()
        if not ext:
            continue
        extensions.append(ext if ext.startswith('.') else f'.{ext}')
    return tuple(extensions)


RISK_THRESHOLDS = load_risk_thresholds(os.getenv('RISK_THRESHOLDS'))
SUPPORTED_FILE_TYPES = load_supported_file_types(os.getenv('SUPPORTED_FILE_TYPES'))

MAX_UPLOAD_SIZE_MB = int(os.getenv('MAX_UPLOAD_SIZE_MB', '10'))
MAX_UPLOAD_SIZE = MAX_UPLOAD_SIZE_MB * 1024 * 1024

ALLOW_ORIGINS = os.getenv('ALLOW_ORIGINS', '*').split(',')
DEBUG = os.getenv('DEBUG', 'False').lower() == 'true'

SMTP_HOST = os.getenv('SMTP_HOST', 'smtp.gmail.com')
SMTP_PORT = int(os.getenv('SMTP_PORT', '587'))
