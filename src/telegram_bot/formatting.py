from __future__ import annotations

from datetime import timezone
from typing import List

from core.models import DISPLAY_DATETIME_FORMAT, MatchRecord, resolve_zone


def display_time(record: MatchRecord, tz_name: str = "UTC") -> str:
    local = record.kickoff.replace(tzinfo=timezone.utc).astimezone(resolve_zone(tz_name))
    return local.strftime(DISPLAY_DATETIME_FORMAT)


def _header(record: MatchRecord, tz_name: str) -> List[str]:
    return [
        f"Match Time: {display_time(record, tz_name)}",
        f"Match Type: {record.league}",
        f"Teams: {record.teams}",
        f"Predicted Outcome: {record.predicted_outcome or '-'}",
    ]


def _prediction_details(record: MatchRecord) -> List[str]:
    lines = []
    if record.predicted_score:
        lines.append(f"Predicted Score: {record.predicted_score}")
    if record.odds:
        lines.append(f"Odds: {record.odds}")
    return lines


def format_match(record: MatchRecord, tz_name: str = "UTC") -> str:
    return "\n".join(_header(record, tz_name) + _prediction_details(record))


def format_match_live(record: MatchRecord, tz_name: str = "UTC") -> str:
    lines = _header(record, tz_name) + _prediction_details(record)
    minute = f" ({record.elapsed}')" if record.elapsed is not None else ""
    lines.append(f"Live: {record.live_score or '0:0'}{minute}")
    return "\n".join(lines)


def format_match_with_result(record: MatchRecord, tz_name: str = "UTC") -> str:
    emoji = "✅" if record.prediction_correct else "❌"
    lines = _header(record, tz_name) + _prediction_details(record)
    lines.append(f"Actual Outcome: {record.actual_outcome}{emoji}")
    if record.actual_score:
        lines.append(f"Actual Score: {record.actual_score}")
    return "\n".join(lines)


def format_top_match(record: MatchRecord, tz_name: str = "UTC") -> str:
    return "\n".join(["[Top Match]"] + _header(record, tz_name) + _prediction_details(record))


__all__ = [
    "display_time",
    "format_match",
    "format_match_live",
    "format_match_with_result",
    "format_top_match",
]
