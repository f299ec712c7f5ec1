"""Data models for the Student Dropout Risk Monitor."""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict

# One spreadsheet row: header -> cell value
RawRow = Dict[str, Any]

# Canonical field name -> actual header in a dataset
ColumnMap = Dict[str, str]


class StudentRecord(BaseModel):
    """Standardized row from a single dataset (attendance, marks or fees)."""
    student_id: str
    attended: Optional[float] = None
    total_classes: Optional[float] = None
    test1: Optional[float] = None
    test2: Optional[float] = None
    test3: Optional[float] = None
    fee_pending: Optional[float] = None


class MergedStudentRecord(BaseModel):
    """One student joined across all three datasets."""
    student_id: str
    attended: float = 0.0
    total_classes: float = 0.0
    test1: Optional[float] = None
    test2: Optional[float] = None
    test3: Optional[float] = None
    fee_pending: float = 0.0


class ProcessedStudentRecord(BaseModel):
    """Final per-student result with derived metrics and risk level."""
    model_config = ConfigDict(frozen=True)

    student_id: str
    attended: float
    total_classes: float
    test1: float
    test2: float
    test3: float
    fee_pending: float
    attendance_pct: float
    avg_score: float
    score_trend: float
    risk_level: str
    imputed_tests: List[str] = []


class RiskSummary(BaseModel):
    """Aggregate statistics over one processed batch."""
    total: int
    high_risk: int
    at_risk: int
    safe: int
    avg_attendance: float
    avg_score: float
    total_fee_pending: float
    improving: int


class UploadResponse(BaseModel):
    """Response from file upload endpoint."""
    success: bool
    message: str
    results: List[ProcessedStudentRecord]
    summary: RiskSummary


class AlertRequest(BaseModel):
    """Request to e-mail mentors about at-risk students."""
    recipients: List[str]
    subject: Optional[str] = None
    students: Optional[List[ProcessedStudentRecord]] = None


class AlertResponse(BaseModel):
    """Result of an alert e-mail delivery."""
    success: bool
    message_id: Optional[str] = None
    students_count: int
