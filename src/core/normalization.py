from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from core.logging import get_logger
from core.models import DRAW, MatchRecord, join_teams

logger = get_logger("core.normalization")

FINISHED_STATUSES = {"FT", "AET", "PEN", "AWD", "WO"}
# fixture ferme: non vanno più interrogate finché non vengono ripianificate
STOPPED_STATUSES = {"PST", "CANC", "ABD"}
LIVE_STATUSES = {"1H", "HT", "2H", "ET", "BT", "P", "LIVE", "INT"}


def _as_int(v: Any) -> Optional[int]:
    try:
        return int(v) if v is not None else None
    except (ValueError, TypeError):
        return None


def parse_kickoff(value: Optional[str]) -> Optional[datetime]:
    """
    ISO 8601 con offset (es. 2024-08-30T18:45:00+00:00) -> datetime UTC naive.
    Senza offset viene assunto UTC.
    """
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.warning("Data fixture non conforme ISO8601: %s", value)
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def league_label(item: Dict[str, Any]) -> str:
    league = item.get("league") or {}
    country = (league.get("country") or "").strip()
    name = (league.get("name") or "").strip()
    return f"{country} {name}".strip()


def status_short(item: Dict[str, Any]) -> Optional[str]:
    fixture = item.get("fixture") or {}
    return (fixture.get("status") or {}).get("short")


def outcome_from_api(item: Dict[str, Any]) -> str:
    """Nome della squadra vincente, oppure 'Draw'."""
    teams = item.get("teams") or {}
    home = teams.get("home") or {}
    away = teams.get("away") or {}
    if home.get("winner") is True:
        return home.get("name") or ""
    if away.get("winner") is True:
        return away.get("name") or ""
    return DRAW


def score_from_api(item: Dict[str, Any]) -> str:
    goals = item.get("goals") or {}
    home = _as_int(goals.get("home")) or 0
    away = _as_int(goals.get("away")) or 0
    return f"{home}:{away}"


def normalize_api_football_fixture(item: Dict[str, Any]) -> Optional[MatchRecord]:
    """
    Normalizza record grezzo dell'API-Football in un MatchRecord.
    Ritorna None se mancano data o squadre (record inutilizzabile).
    """
    fixture = item.get("fixture") or {}
    teams = item.get("teams") or {}

    kickoff = parse_kickoff(fixture.get("date"))
    home = (teams.get("home") or {}).get("name")
    away = (teams.get("away") or {}).get("name")
    if kickoff is None or not home or not away:
        logger.warning("Fixture scartata (dati incompleti) id=%s", fixture.get("id"))
        return None

    status = status_short(item)
    record = MatchRecord(
        fixture_id=_as_int(fixture.get("id")),
        league=league_label(item),
        kickoff=kickoff,
        teams=join_teams(home, away),
        status=status,
        elapsed=_as_int((fixture.get("status") or {}).get("elapsed")),
    )
    if status in LIVE_STATUSES or status in FINISHED_STATUSES:
        record.live_score = score_from_api(item)
    return record


__all__ = [
    "FINISHED_STATUSES",
    "STOPPED_STATUSES",
    "LIVE_STATUSES",
    "normalize_api_football_fixture",
    "outcome_from_api",
    "score_from_api",
    "parse_kickoff",
    "league_label",
    "status_short",
]
