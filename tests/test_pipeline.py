"""Tests for the end-to-end pipeline."""

import pytest

from dropout_monitor.config import RiskThresholds, TierThreshold
from dropout_monitor.pipeline import process_uploads, run_pipeline
from dropout_monitor.risk import AT_RISK, HIGH_RISK, SAFE


ATTENDANCE_ROWS = [
    {'Student ID': 'S1', 'Classes Attended': '45', 'Total Classes': '50'},
    {'Student ID': 'S2', 'Classes Attended': '20', 'Total Classes': '50'},
]

MARKS_ROWS = [
    {'student id': 'S1', 'Test 1': 80, 'Test 2': 'absent', 'Test-3': 90},
    {'student id': 'S2', 'Test 1': 30, 'Test 2': 30, 'Test-3': 30},
    {'student id': 'S3', 'Test 1': 80, 'Test 2': 90, 'Test-3': 70},
]

FEES_ROWS = [
    {'Roll': 'S1', 'Fee Pending (INR)': '1200'},
    {'Roll': 'S4', 'Fee Pending (INR)': '500'},
]


def test_run_pipeline():
    """Messy headers are reconciled into one record per student."""
    results = run_pipeline(ATTENDANCE_ROWS, MARKS_ROWS, FEES_ROWS)
    by_id = {r.student_id: r for r in results}

    assert [r.student_id for r in results] == ['S1', 'S2', 'S3', 'S4']

    s1 = by_id['S1']
    assert s1.attendance_pct == 90.0
    assert s1.test2 == 85.0
    assert s1.avg_score == 85.0
    assert s1.score_trend == 10.0
    assert s1.fee_pending == 1200.0
    assert s1.risk_level == SAFE

    s2 = by_id['S2']
    assert s2.attendance_pct == 40.0
    assert s2.avg_score == 30.0
    assert s2.risk_level == HIGH_RISK

    # Only in marks: no attendance means High Risk
    assert by_id['S3'].attendance_pct == 0.0
    assert by_id['S3'].risk_level == HIGH_RISK

    # Only in fees: scores come from the batch-wide average
    s4 = by_id['S4']
    assert s4.fee_pending == 500.0
    assert s4.imputed_tests == ['test1', 'test2', 'test3']
    assert s4.avg_score == 62.5


def test_run_pipeline_empty_fees():
    """An empty fees dataset defaults every fee to 0."""
    results = run_pipeline(ATTENDANCE_ROWS, MARKS_ROWS, [])

    assert len(results) == 3
    assert all(r.fee_pending == 0.0 for r in results)


def test_run_pipeline_all_empty():
    """Three empty datasets give no results."""
    assert run_pipeline([], [], []) == []


def test_run_pipeline_custom_expected_columns():
    """Callers may narrow the expected columns of a dataset."""
    attendance = [{'Student ID': 'P1', 'Attended': 8, 'Total Classes': 10}]

    results = run_pipeline(
        attendance, [], [],
        expected_columns={'attendance': ['student_id', 'attended']}
    )

    assert results[0].student_id == 'P1'
    assert results[0].attended == 8.0
    assert results[0].total_classes == 0.0
    assert results[0].attendance_pct == 0.0


def test_run_pipeline_thresholds():
    """Thresholds are forwarded to the risk engine."""
    lenient = RiskThresholds(
        high_risk=TierThreshold(attendance=10.0, score=10.0),
        at_risk=TierThreshold(attendance=50.0, score=50.0)
    )

    results = run_pipeline(ATTENDANCE_ROWS, MARKS_ROWS, FEES_ROWS, thresholds=lenient)
    by_id = {r.student_id: r for r in results}

    assert by_id['S2'].risk_level == AT_RISK


def test_union_cardinality():
    """Output has one record per distinct id across all datasets."""
    attendance = [{'ID': 'A'}, {'ID': 'B'}, {'ID': 'A'}]
    marks = [{'ID': 'B'}, {'ID': 'C'}]
    fees = [{'ID': 'C'}, {'ID': 'D'}]

    results = run_pipeline(attendance, marks, fees)

    assert sorted(r.student_id for r in results) == ['A', 'B', 'C', 'D']


def test_process_uploads_csv():
    """Uploaded CSV files are read and processed together."""
    uploads = {
        'attendance': (b"Student ID,Attended,Total Classes\nS1,90,100\n", 'attendance.csv'),
        'marks': (b"Student ID,Test1,Test2,Test3\nS1,80,70,60\n", 'marks.csv'),
        'fees': (b"Student ID,Fee Pending\nS1,0\n", 'fees.csv'),
    }

    results = process_uploads(uploads)

    assert len(results) == 1
    assert results[0].attendance_pct == 90.0
    assert results[0].avg_score == 70.0
    assert results[0].score_trend == -20.0
    assert results[0].risk_level == SAFE


def test_process_uploads_empty_file():
    """A header-only file contributes no students."""
    uploads = {
        'attendance': (b"Student ID,Attended,Total Classes\nS1,90,100\n", 'attendance.csv'),
        'marks': (b"Student ID,Test1,Test2,Test3\n", 'marks.csv'),
        'fees': (b"Student ID,Fee Pending\n", 'fees.csv'),
    }

    results = process_uploads(uploads)

    assert len(results) == 1
    assert results[0].fee_pending == 0.0
    assert results[0].avg_score == 0.0


def test_process_uploads_missing_dataset():
    """All three datasets are required."""
    with pytest.raises(ValueError):
        process_uploads({'attendance': (b"ID\nS1\n", 'a.csv')})


def test_process_uploads_unreadable_file():
    """A file that cannot be read fails the whole run."""
    uploads = {
        'attendance': (b"Student ID\nS1\n", 'attendance.csv'),
        'marks': (b"not a workbook", 'marks.xlsx'),
        'fees': (b"Student ID\nS1\n", 'fees.csv'),
    }

    with pytest.raises(Exception):
        process_uploads(uploads)
