from datetime import date, datetime, timedelta

from core.accuracy import (
    AccuracyReport,
    accuracy_for_period,
    compute_accuracy,
    days_in_previous_month,
    days_in_previous_year,
    format_accuracy_message,
    period_label,
)
from core.models import MatchRecord


def _rec(predicted, actual, kickoff=datetime(2025, 1, 1, 18, 0), fixture_id=None):
    return MatchRecord(
        league="L",
        kickoff=kickoff,
        teams="A vs. B",
        fixture_id=fixture_id,
        predicted_outcome=predicted,
        actual_outcome=actual,
    )


def test_compute_accuracy_case_insensitive():
    report = compute_accuracy(
        [
            _rec("Real Madrid", "real madrid"),
            _rec("Draw", "Draw"),
            _rec("A", "B"),
            _rec("A", None),
        ]
    )
    assert report == AccuracyReport(correct=2, total=3)
    assert round(report.accuracy, 2) == 66.67


def test_empty_period_is_zero():
    report = compute_accuracy([])
    assert report.accuracy == 0.0
    assert format_accuracy_message(report, "week") == "No matches with results in the last week."


def test_format_message():
    msg = format_accuracy_message(AccuracyReport(3, 4), "24 hours")
    assert msg == "The accuracy of predictions in the last 24 hours is 75.00% (3/4)."


def test_period_labels():
    assert period_label(1) == "24 hours"
    assert period_label(7) == "week"
    assert period_label(30) == "month"
    assert period_label(365) == "year"
    assert period_label(3) == "3 days"


def test_previous_period_lengths():
    assert days_in_previous_month(date(2024, 3, 5)) == 29
    assert days_in_previous_month(date(2025, 1, 1)) == 31
    assert days_in_previous_year(date(2025, 1, 1)) == 366
    assert days_in_previous_year(date(2026, 1, 1)) == 365


def test_accuracy_for_period_uses_store(store):
    now = datetime(2025, 1, 10, 12, 0)
    inside = _rec("A", "A", kickoff=now - timedelta(hours=5), fixture_id=1)
    outside = _rec("A", "B", kickoff=now - timedelta(days=3), fixture_id=2)
    for rec in (inside, outside):
        store.insert(rec)
    report = accuracy_for_period(store, 1, now)
    assert report == AccuracyReport(correct=1, total=1)
    assert accuracy_for_period(store, 7, now).total == 2
