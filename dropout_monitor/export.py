"""CSV export of processed student results."""

import csv
from io import StringIO
from typing import Sequence

from dropout_monitor.models import ProcessedStudentRecord
from dropout_monitor.risk import filter_at_risk

EXPORT_COLUMNS = ['student_id', 'attendance_pct', 'avg_score', 'score_trend', 'fee_pending', 'risk_level']

EXPORT_FILENAME = 'at_risk_students.csv'


def build_results_csv(records: Sequence[ProcessedStudentRecord], at_risk_only: bool = True) -> str:
    """
    Render results as CSV text.

    Args:
        records: Processed student records
        at_risk_only: Keep only 'At Risk' and 'High Risk' students

    Returns:
        CSV content with a header row; numbers have two decimals
    """
    if at_risk_only:
        records = filter_at_risk(records)

    output = StringIO()
    writer = csv.writer(output, lineterminator='\n')
    writer.writerow(EXPORT_COLUMNS)

    for record in records:
        writer.writerow([
            record.student_id,
            f"{record.attendance_pct:.2f}",
            f"{record.avg_score:.2f}",
            f"{record.score_trend:.2f}",
            f"{record.fee_pending:.2f}",
            record.risk_level
        ])

    return output.getvalue()
