from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone, tzinfo
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

DISPLAY_DATETIME_FORMAT = "%Y-%m-%d %H:%M"
TEAMS_SEPARATOR = " vs. "
DRAW = "Draw"


@dataclass
class MatchRecord:
    """
    Record di una fixture salvata.

    kickoff è sempre un datetime UTC naive (così viene salvato su SQLite).
    Chiave: (league, fixture_id) se fixture_id presente, altrimenti
    (league, kickoff, teams) per i match inseriti a mano.
    """

    league: str
    kickoff: datetime
    teams: str
    fixture_id: Optional[int] = None
    predicted_outcome: Optional[str] = None
    predicted_score: Optional[str] = None
    odds: Optional[str] = None
    actual_outcome: Optional[str] = None
    actual_score: Optional[str] = None
    status: Optional[str] = None
    live_score: Optional[str] = None
    elapsed: Optional[int] = None
    telegram_message_id: Optional[int] = None

    @property
    def kickoff_display(self) -> str:
        return self.kickoff.strftime(DISPLAY_DATETIME_FORMAT)

    @property
    def odds_value(self) -> Optional[float]:
        if self.odds is None:
            return None
        try:
            return float(str(self.odds).replace(",", "."))
        except ValueError:
            return None

    @property
    def is_predicted(self) -> bool:
        return self.predicted_outcome is not None

    @property
    def is_resolved(self) -> bool:
        return self.actual_outcome is not None

    @property
    def is_published(self) -> bool:
        return self.telegram_message_id is not None

    @property
    def prediction_correct(self) -> Optional[bool]:
        if self.predicted_outcome is None or self.actual_outcome is None:
            return None
        return self.predicted_outcome.strip().lower() == self.actual_outcome.strip().lower()

    def with_changes(self, **changes: Any) -> "MatchRecord":
        return replace(self, **changes)


def join_teams(home: str, away: str) -> str:
    return f"{home.strip()}{TEAMS_SEPARATOR}{away.strip()}"


def resolve_zone(tz_name: Optional[str]) -> tzinfo:
    """Nome IANA -> tzinfo; nome vuoto o sconosciuto -> UTC."""
    if not tz_name or tz_name.upper() == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        return timezone.utc


def parse_display_datetime(value: str, tz_name: Optional[str] = None) -> datetime:
    """
    '2025-01-01 18:00' -> datetime UTC naive.
    Con tz_name l'orario è letto come ora locale di quella zona.
    """
    local = datetime.strptime(value.strip(), DISPLAY_DATETIME_FORMAT)
    if not tz_name:
        return local
    return local.replace(tzinfo=resolve_zone(tz_name)).astimezone(timezone.utc).replace(tzinfo=None)


__all__ = [
    "MatchRecord",
    "DISPLAY_DATETIME_FORMAT",
    "DRAW",
    "join_teams",
    "parse_display_datetime",
    "resolve_zone",
]
