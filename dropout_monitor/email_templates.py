"""Alert e-mail generation for mentors."""

from html import escape
from typing import Dict, Optional, Sequence

from dropout_monitor.models import ProcessedStudentRecord
from dropout_monitor.risk import HIGH_RISK

DEFAULT_ALERT_SUBJECT = 'At-Risk Students Alert'

_BADGE_STYLES = {
    HIGH_RISK: 'background-color:#fee2e2;color:#dc2626;',
}
_DEFAULT_BADGE_STYLE = 'background-color:#fef3c7;color:#d97706;'


def format_trend(score_trend: float) -> str:
    """Score trend with an explicit sign ('+5.00', '-20.00')."""
    return f"{'+' if score_trend >= 0 else ''}{score_trend:.2f}"


def _student_row(student: ProcessedStudentRecord) -> str:
    badge_style = _BADGE_STYLES.get(student.risk_level, _DEFAULT_BADGE_STYLE)
    return f"""
    <tr style="border-bottom:1px solid #ddd;">
      <td>{escape(student.student_id)}</td>
      <td>{student.attendance_pct:.2f}%</td>
      <td>{student.avg_score:.2f}</td>
      <td>{format_trend(student.score_trend)}</td>
      <td>${student.fee_pending:.2f}</td>
      <td><span style="padding:4px 8px;border-radius:12px;font-size:12px;font-weight:500;{badge_style}">{escape(student.risk_level)}</span></td>
    </tr>"""


def generate_student_table(students: Sequence[ProcessedStudentRecord]) -> str:
    """HTML table listing the given students."""
    if not students:
        return '<p>No at-risk students found.</p>'

    rows = ''.join(_student_row(student) for student in students)
    return f"""
<div style="font-family: Arial, sans-serif; max-width: 800px; margin: 0 auto;">
  <h2 style="color:#1f2937;">At-Risk Students Alert</h2>
  <table style="width:100%;border-collapse:collapse;">
    <thead>
      <tr>
        <th>Student ID</th>
        <th>Attendance %</th>
        <th>Avg Score</th>
        <th>Score Trend</th>
        <th>Fee Pending</th>
        <th>Risk Level</th>
      </tr>
    </thead>
    <tbody>{rows}
    </tbody>
  </table>
</div>"""


def generate_alert_email(
    students: Sequence[ProcessedStudentRecord],
    subject: Optional[str] = None
) -> Dict[str, str]:
    """Build the mentor alert e-mail (subject and HTML body)."""
    return {
        'subject': subject or DEFAULT_ALERT_SUBJECT,
        'html': generate_student_table(students),
    }
