"""Spreadsheet reading, column detection, standardization and merging."""

import logging
import os
import re
from io import BytesIO
from itertools import chain
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from dropout_monitor.config import DATASET_TYPES, SUPPORTED_FILE_TYPES
from dropout_monitor.models import ColumnMap, MergedStudentRecord, RawRow, StudentRecord

logger = logging.getLogger(__name__)

ATTENDANCE_FIELDS = ('attended', 'total_classes')
MARKS_FIELDS = ('test1', 'test2', 'test3')
FEES_FIELDS = ('fee_pending',)

_NON_ALNUM_RE = re.compile(r'[^a-z0-9]')


def is_supported_file(filename: str, supported_types: Sequence[str] = SUPPORTED_FILE_TYPES) -> bool:
    """Check the file extension against the supported upload types."""
    return bool(filename) and filename.lower().endswith(tuple(supported_types))


def read_rows(file_bytes: bytes, filename: str) -> List[RawRow]:
    """
    Read the first sheet of an Excel file (or a CSV file) into raw rows.

    Blank rows are skipped and empty cells become None. CSV cells are kept
    as text so identifiers such as '007' keep their leading zeros.

    Args:
        file_bytes: Raw bytes of the uploaded file
        filename: Original file name, used to pick the reader

    Returns:
        List of dicts mapping header -> cell value, in sheet order
    """
    ext = os.path.splitext(filename or '')[1].lower()
    if ext == '.csv':
        df = pd.read_csv(BytesIO(file_bytes), dtype=str)
    elif ext == '.xlsx':
        df = pd.read_excel(BytesIO(file_bytes), sheet_name=0, engine='openpyxl')
    else:
        raise ValueError(f"Unsupported file type '{ext or filename}'")

    df.columns = [str(col) for col in df.columns]
    df = df.dropna(how='all')
    df = df.astype(object).where(df.notna(), None)

    rows = df.to_dict(orient='records')
    logger.debug("Read %d rows from '%s' with columns %s", len(rows), filename, list(df.columns))
    return rows


def normalize_col_name(col_name: Any) -> str:
    """Lower-case a header and strip every non-alphanumeric character."""
    if col_name is None:
        return ''
    return _NON_ALNUM_RE.sub('', str(col_name).lower())


def _collect_headers(rows: Sequence[RawRow]) -> List[str]:
    # Keys of the first row, then keys first seen in later rows
    return list(dict.fromkeys(chain.from_iterable(row.keys() for row in rows)))


def _header_matches(header: Any, expected: str) -> bool:
    if str(header).lower() == expected.lower():
        return True
    normalized_header = normalize_col_name(header)
    normalized_expected = normalize_col_name(expected)
    return normalized_expected in normalized_header or normalized_header in normalized_expected


def detect_columns(rows: Sequence[RawRow], expected_columns: Sequence[str]) -> ColumnMap:
    """
    Map canonical field names onto the actual headers of a dataset.

    For every expected field the headers are scanned in declaration order and
    the first one that matches wins. A header matches when it equals the field
    ignoring case, or when either normalized name contains the other.

    Args:
        rows: Sample rows of the dataset
        expected_columns: Canonical field names, e.g. ['student_id', 'attended']

    Returns:
        Dict of canonical field -> header; unmatched fields are left out
    """
    if not rows:
        return {}

    headers = _collect_headers(rows)
    column_map: ColumnMap = {}

    for expected in expected_columns:
        found = next((header for header in headers if _header_matches(header, expected)), None)
        if found is not None:
            column_map[expected] = found
        else:
            logger.warning("No column found for '%s' in headers %s", expected, headers)

    logger.debug("Detected columns: %s", column_map)
    return column_map


def to_number(value: Any) -> Optional[float]:
    """
    Convert a cell value to a float.

    Handles numbers and numeric strings such as ' 85 ' or '85%'.

    Args:
        value: Raw cell value

    Returns:
        Float value, or None when the value is missing or unparseable
    """
    if value is None or isinstance(value, (bool, np.bool_)):
        return None
    if not pd.api.types.is_scalar(value) or pd.isna(value):
        return None

    if isinstance(value, str):
        text = value.strip()
        if text.endswith('%'):
            text = text[:-1].strip()
        if not text:
            return None
    else:
        text = value

    try:
        number = float(text)
    except (ValueError, TypeError):
        return None

    if np.isnan(number) or np.isinf(number):
        return None
    return number


def _cell_to_str(value: Any) -> str:
    if value is None:
        return ''
    if pd.api.types.is_scalar(value) and pd.isna(value):
        return ''
    if isinstance(value, (float, np.floating)) and float(value).is_integer():
        # Spreadsheets hand back numeric ids as floats (101.0)
        return str(int(value))
    return str(value).strip()


def resolve_student_id(row: RawRow, column_map: ColumnMap) -> str:
    """
    Find the student identifier of a row.

    Uses the detected student_id column, else the first header mentioning
    'student' or 'id', else the first column of the row. Never fails: a row
    without a usable value yields ''.
    """
    id_col = column_map.get('student_id')
    if id_col is None:
        id_col = next(
            (key for key in row if 'student' in str(key).lower() or 'id' in str(key).lower()),
            None
        )
    if id_col is None:
        id_col = next(iter(row), None)
    if id_col is None:
        return ''
    return _cell_to_str(row.get(id_col))


def _mapped_value(row: RawRow, column_map: ColumnMap, field: str) -> Any:
    col = column_map.get(field)
    if col is None:
        return None
    return row.get(col)


def standardize_data(rows: Sequence[RawRow], column_map: ColumnMap, dataset_type: str) -> List[StudentRecord]:
    """
    Convert raw rows into StudentRecords using a detected column map.

    Attendance and fee values that are missing or unparseable default to 0.
    Test scores that are missing or unparseable are left as None so they can
    be imputed later.

    Args:
        rows: Raw rows of one dataset
        column_map: Column map from detect_columns
        dataset_type: "attendance", "marks" or "fees"

    Returns:
        One StudentRecord per row, in the same order
    """
    if dataset_type not in DATASET_TYPES:
        raise ValueError(f"Unknown dataset type '{dataset_type}', expected one of {DATASET_TYPES}")

    records: List[StudentRecord] = []
    empty_ids = 0

    for row in rows:
        student_id = resolve_student_id(row, column_map)
        if not student_id:
            empty_ids += 1

        fields: Dict[str, Optional[float]] = {}
        if dataset_type == 'attendance':
            for field in ATTENDANCE_FIELDS:
                fields[field] = to_number(_mapped_value(row, column_map, field)) or 0.0
        elif dataset_type == 'marks':
            for field in MARKS_FIELDS:
                fields[field] = to_number(_mapped_value(row, column_map, field))
        else:
            for field in FEES_FIELDS:
                fields[field] = to_number(_mapped_value(row, column_map, field)) or 0.0

        records.append(StudentRecord(student_id=student_id, **fields))

    if empty_ids:
        logger.warning("%d %s rows have no student id", empty_ids, dataset_type)
    logger.debug("Standardized %d %s rows", len(records), dataset_type)
    return records


def _index_first(records: Sequence[StudentRecord], dataset_type: str) -> Dict[str, StudentRecord]:
    index: Dict[str, StudentRecord] = {}
    duplicates = []
    for record in records:
        if record.student_id in index:
            duplicates.append(record.student_id)
            continue
        index[record.student_id] = record
    if duplicates:
        logger.warning(
            "Duplicate student ids in %s data, keeping first occurrence: %s",
            dataset_type, sorted(set(duplicates))
        )
    return index


def _value_or_zero(record: Optional[StudentRecord], field: str) -> float:
    if record is None:
        return 0.0
    value = getattr(record, field)
    return value if value is not None else 0.0


def merge_data(
    attendance: Sequence[StudentRecord],
    marks: Sequence[StudentRecord],
    fees: Sequence[StudentRecord]
) -> List[MergedStudentRecord]:
    """
    Join the three standardized datasets on student_id.

    Every student seen in any dataset appears exactly once, in order of first
    appearance across attendance, then marks, then fees. Students missing
    from a dataset get its defaults (0 for attendance and fees, None for
    test scores).
    """
    student_ids = dict.fromkeys(record.student_id for record in chain(attendance, marks, fees))

    attendance_by_id = _index_first(attendance, 'attendance')
    marks_by_id = _index_first(marks, 'marks')
    fees_by_id = _index_first(fees, 'fees')

    merged: List[MergedStudentRecord] = []
    for student_id in student_ids:
        attendance_record = attendance_by_id.get(student_id)
        marks_record = marks_by_id.get(student_id)
        fees_record = fees_by_id.get(student_id)

        merged.append(MergedStudentRecord(
            student_id=student_id,
            attended=_value_or_zero(attendance_record, 'attended'),
            total_classes=_value_or_zero(attendance_record, 'total_classes'),
            test1=marks_record.test1 if marks_record else None,
            test2=marks_record.test2 if marks_record else None,
            test3=marks_record.test3 if marks_record else None,
            fee_pending=_value_or_zero(fees_record, 'fee_pending'),
        ))

    logger.debug(
        "Merged %d attendance, %d marks, %d fees rows into %d students",
        len(attendance), len(marks), len(fees), len(merged)
    )
    return merged
