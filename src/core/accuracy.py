from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, Optional

from core.logging import get_logger
from core.models import MatchRecord
from core.persistence import MatchStore

logger = get_logger("core.accuracy")


@dataclass(frozen=True)
class AccuracyReport:
    correct: int
    total: int

    @property
    def accuracy(self) -> float:
        if self.total == 0:
            return 0.0
        return 100.0 * self.correct / self.total


def compute_accuracy(records: Iterable[MatchRecord]) -> AccuracyReport:
    """Conta solo record con esito predetto e reale (confronto case-insensitive)."""
    correct = 0
    total = 0
    for rec in records:
        verdict = rec.prediction_correct
        if verdict is None:
            continue
        total += 1
        if verdict:
            correct += 1
    return AccuracyReport(correct=correct, total=total)


def accuracy_for_period(store: MatchStore, days: int, now: Optional[datetime] = None) -> AccuracyReport:
    end = now or datetime.now(timezone.utc)
    start = end - timedelta(days=days)
    report = compute_accuracy(store.resolved_between(start, end))
    logger.info("Accuracy %s giorni: %s/%s", days, report.correct, report.total)
    return report


def period_label(days: int) -> str:
    if days == 1:
        return "24 hours"
    if days == 7:
        return "week"
    if 28 <= days <= 31:
        return "month"
    if days in (365, 366):
        return "year"
    return f"{days} days"


def format_accuracy_message(report: AccuracyReport, label: str) -> str:
    if report.total == 0:
        return f"No matches with results in the last {label}."
    return (
        f"The accuracy of predictions in the last {label} is "
        f"{report.accuracy:.2f}% ({report.correct}/{report.total})."
    )


def days_in_previous_month(today: date) -> int:
    year, month = (today.year, today.month - 1) if today.month > 1 else (today.year - 1, 12)
    return calendar.monthrange(year, month)[1]


def days_in_previous_year(today: date) -> int:
    return 366 if calendar.isleap(today.year - 1) else 365


__all__ = [
    "AccuracyReport",
    "compute_accuracy",
    "accuracy_for_period",
    "format_accuracy_message",
    "period_label",
    "days_in_previous_month",
    "days_in_previous_year",
]
