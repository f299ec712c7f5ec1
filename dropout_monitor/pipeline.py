"""End-to-end pipeline: detect, standardize, merge and score three datasets."""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from dropout_monitor.config import DATASET_TYPES, DEFAULT_EXPECTED_COLUMNS, RiskThresholds
from dropout_monitor.models import ProcessedStudentRecord, RawRow, StudentRecord
from dropout_monitor.parsers import detect_columns, merge_data, read_rows, standardize_data
from dropout_monitor.risk import process_data

logger = logging.getLogger(__name__)


def _expected_for(dataset_type: str, expected_columns: Optional[Mapping[str, Sequence[str]]]) -> Sequence[str]:
    if expected_columns and dataset_type in expected_columns:
        return expected_columns[dataset_type]
    return DEFAULT_EXPECTED_COLUMNS[dataset_type]


def standardize_dataset(
    rows: Sequence[RawRow],
    dataset_type: str,
    expected_columns: Optional[Mapping[str, Sequence[str]]] = None
) -> List[StudentRecord]:
    """Detect the columns of one dataset and standardize its rows."""
    column_map = detect_columns(rows, _expected_for(dataset_type, expected_columns))
    return standardize_data(rows, column_map, dataset_type)


def run_pipeline(
    attendance_rows: Sequence[RawRow],
    marks_rows: Sequence[RawRow],
    fees_rows: Sequence[RawRow],
    expected_columns: Optional[Mapping[str, Sequence[str]]] = None,
    thresholds: Optional[RiskThresholds] = None
) -> List[ProcessedStudentRecord]:
    """
    Run the whole reconciliation pipeline on already-read rows.

    Args:
        attendance_rows: Raw rows of the attendance sheet
        marks_rows: Raw rows of the marks sheet
        fees_rows: Raw rows of the fees sheet
        expected_columns: Optional per-dataset override of expected column names
        thresholds: Optional risk thresholds, defaults are used otherwise

    Returns:
        One ProcessedStudentRecord per distinct student id
    """
    attendance = standardize_dataset(attendance_rows, 'attendance', expected_columns)
    marks = standardize_dataset(marks_rows, 'marks', expected_columns)
    fees = standardize_dataset(fees_rows, 'fees', expected_columns)

    merged = merge_data(attendance, marks, fees)
    return process_data(merged, thresholds)


def _read_and_standardize(
    upload: Tuple[bytes, str],
    dataset_type: str,
    expected_columns: Optional[Mapping[str, Sequence[str]]]
) -> List[StudentRecord]:
    file_bytes, filename = upload
    rows = read_rows(file_bytes, filename)
    logger.info("Loaded %d %s rows from '%s'", len(rows), dataset_type, filename)
    return standardize_dataset(rows, dataset_type, expected_columns)


def process_uploads(
    uploads: Mapping[str, Tuple[bytes, str]],
    expected_columns: Optional[Mapping[str, Sequence[str]]] = None,
    thresholds: Optional[RiskThresholds] = None
) -> List[ProcessedStudentRecord]:
    """
    Read and process the three uploaded files.

    The files are read and standardized concurrently; merging and scoring
    start only once all three datasets are ready. A file that cannot be read
    raises, and no partial result is returned.

    Args:
        uploads: Dict of dataset type -> (file bytes, file name) for
            'attendance', 'marks' and 'fees'
        expected_columns: Optional per-dataset override of expected column names
        thresholds: Optional risk thresholds

    Returns:
        One ProcessedStudentRecord per distinct student id
    """
    missing = [dataset_type for dataset_type in DATASET_TYPES if dataset_type not in uploads]
    if missing:
        raise ValueError(f"Missing datasets: {', '.join(missing)}")

    with ThreadPoolExecutor(max_workers=len(DATASET_TYPES)) as executor:
        futures = {
            dataset_type: executor.submit(_read_and_standardize, uploads[dataset_type], dataset_type, expected_columns)
            for dataset_type in DATASET_TYPES
        }
        standardized: Dict[str, List[StudentRecord]] = {
            dataset_type: future.result() for dataset_type, future in futures.items()
        }

    merged = merge_data(standardized['attendance'], standardized['marks'], standardized['fees'])
    results = process_data(merged, thresholds)
    logger.info("Processed %d students", len(results))
    return results
