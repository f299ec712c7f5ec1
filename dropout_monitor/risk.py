"""Risk scoring logic: score imputation, derived metrics and risk tiers."""

import logging
import math
from typing import Dict, List, Optional, Sequence

from dropout_monitor.config import DEFAULT_RISK_THRESHOLDS, RiskThresholds
from dropout_monitor.models import MergedStudentRecord, ProcessedStudentRecord, RiskSummary

logger = logging.getLogger(__name__)

HIGH_RISK = 'High Risk'
AT_RISK = 'At Risk'
SAFE = 'Safe'

# Most severe first
RISK_LEVELS = (HIGH_RISK, AT_RISK, SAFE)

TEST_FIELDS = ('test1', 'test2', 'test3')


def round_half_away(value: float, ndigits: int = 2) -> float:
    """
    Round to ndigits decimals, halves away from zero (2.345 -> 2.35).

    Args:
        value: Number to round
        ndigits: Decimal places to keep

    Returns:
        Rounded value
    """
    factor = 10 ** ndigits
    rounded = math.floor(abs(value) * factor + 0.5) / factor
    return math.copysign(rounded, value) if rounded else 0.0


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values)


def global_score_average(records: Sequence[MergedStudentRecord]) -> float:
    """Pooled mean of every present test score in the batch (0 if none)."""
    scores = [
        score
        for record in records
        for score in (getattr(record, field) for field in TEST_FIELDS)
        if score is not None
    ]
    return _mean(scores) if scores else 0.0


def impute_scores(record: MergedStudentRecord, global_average: float) -> Dict[str, float]:
    """
    Fill a student's missing test scores.

    Missing scores take the mean of the student's own present scores, or the
    batch-wide global average when the student has no scores at all.

    Args:
        record: Merged student record
        global_average: Value from global_score_average for the whole batch

    Returns:
        Dict of test field -> score, with every test field present
    """
    raw = {field: getattr(record, field) for field in TEST_FIELDS}
    present = [score for score in raw.values() if score is not None]
    fill_value = _mean(present) if present else global_average
    return {field: (score if score is not None else fill_value) for field, score in raw.items()}


def classify_risk(
    attendance_pct: float,
    avg_score: float,
    thresholds: RiskThresholds = DEFAULT_RISK_THRESHOLDS
) -> str:
    """
    Assign a risk tier from attendance and average score.

    The most severe tier whose attendance or score threshold is breached wins.

    Args:
        attendance_pct: Attendance percentage (0-100)
        avg_score: Average test score
        thresholds: Tier cut-offs

    Returns:
        'High Risk', 'At Risk' or 'Safe'
    """
    if attendance_pct < thresholds.high_risk.attendance or avg_score < thresholds.high_risk.score:
        return HIGH_RISK
    elif attendance_pct < thresholds.at_risk.attendance or avg_score < thresholds.at_risk.score:
        return AT_RISK
    else:
        return SAFE


def process_data(
    merged: Sequence[MergedStudentRecord],
    thresholds: Optional[RiskThresholds] = None
) -> List[ProcessedStudentRecord]:
    """
    Compute attendance %, average score, score trend and risk level.

    Args:
        merged: Output of merge_data
        thresholds: Tier cut-offs, defaults to DEFAULT_RISK_THRESHOLDS

    Returns:
        One ProcessedStudentRecord per merged record, in the same order
    """
    if thresholds is None:
        thresholds = DEFAULT_RISK_THRESHOLDS

    # Computed from raw scores only, before any student is imputed
    global_average = global_score_average(merged)

    processed: List[ProcessedStudentRecord] = []
    for record in merged:
        scores = impute_scores(record, global_average)
        imputed = [field for field in TEST_FIELDS if getattr(record, field) is None]

        if record.total_classes > 0:
            attendance_pct = record.attended / record.total_classes * 100.0
        else:
            attendance_pct = 0.0
        avg_score = _mean([scores[field] for field in TEST_FIELDS])
        score_trend = scores['test3'] - scores['test1']

        # Classified on unrounded values; rounding is for reporting only
        risk_level = classify_risk(attendance_pct, avg_score, thresholds)

        processed.append(ProcessedStudentRecord(
            student_id=record.student_id,
            attended=record.attended,
            total_classes=record.total_classes,
            test1=scores['test1'],
            test2=scores['test2'],
            test3=scores['test3'],
            fee_pending=record.fee_pending,
            attendance_pct=round_half_away(attendance_pct),
            avg_score=round_half_away(avg_score),
            score_trend=round_half_away(score_trend),
            risk_level=risk_level,
            imputed_tests=imputed,
        ))

    return processed


def filter_at_risk(records: Sequence[ProcessedStudentRecord]) -> List[ProcessedStudentRecord]:
    """Students classified 'At Risk' or 'High Risk'."""
    return [record for record in records if record.risk_level in (HIGH_RISK, AT_RISK)]


def summarize_results(records: Sequence[ProcessedStudentRecord]) -> RiskSummary:
    """Per-tier counts and batch averages for a processed batch."""
    total = len(records)
    counts = {level: 0 for level in RISK_LEVELS}
    for record in records:
        counts[record.risk_level] = counts.get(record.risk_level, 0) + 1

    if total:
        avg_attendance = round_half_away(sum(r.attendance_pct for r in records) / total)
        avg_score = round_half_away(sum(r.avg_score for r in records) / total)
    else:
        avg_attendance = 0.0
        avg_score = 0.0

    return RiskSummary(
        total=total,
        high_risk=counts[HIGH_RISK],
        at_risk=counts[AT_RISK],
        safe=counts[SAFE],
        avg_attendance=avg_attendance,
        avg_score=avg_score,
        total_fee_pending=round_half_away(sum(r.fee_pending for r in records)),
        improving=sum(1 for r in records if r.score_trend > 0),
    )
