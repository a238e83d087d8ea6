from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from core.models import MatchRecord, join_teams, parse_display_datetime

PREDICTION_PATTERN = re.compile(
    r"\[Match Start\]:\s*\[(.+?)\]\s*"
    r"\[Match Type\]:\s*\[(.+?)\]\s*"
    r"\[Teams\]:\s*\[(.+?) vs\. (.+?)\]\s*"
    r"\[Match Outcome\]:\s*\[(.+?)\]\s*"
    r"\[Score\]:\s*\[(.+?)\]\s*"
    r"\[Odd for Match Outcome\]:\s*\[(.+?)\]"
)


class PredictionParseError(ValueError):
    """La risposta del modello non rispetta il template."""


@dataclass(frozen=True)
class ParsedPrediction:
    start: str
    match_type: str
    teams: str
    outcome: str
    score: str
    odds: str

    @property
    def kickoff(self) -> Optional[datetime]:
        try:
            return parse_display_datetime(self.start)
        except ValueError:
            return None

    def apply_to(self, record: MatchRecord) -> MatchRecord:
        """Copia i campi predetti su un record (datetime/lega/squadre restano quelli del record)."""
        return record.with_changes(
            predicted_outcome=self.outcome,
            predicted_score=self.score,
            odds=self.odds,
        )

    def to_record(self, tz_name: Optional[str] = None) -> MatchRecord:
        """
        Record completo per i match inseriti a mano (/newmatch).
        L'orario è nella zona tz_name (default UTC) e viene salvato in UTC.
        """
        try:
            kickoff = parse_display_datetime(self.start, tz_name)
        except ValueError as e:
            raise PredictionParseError(f"Data non valida nella predizione: {self.start!r}") from e
        return MatchRecord(
            league=self.match_type,
            kickoff=kickoff,
            teams=self.teams,
            predicted_outcome=self.outcome,
            predicted_score=self.score,
            odds=self.odds,
        )


def parse_predictions(text: str) -> List[ParsedPrediction]:
    out: List[ParsedPrediction] = []
    for m in PREDICTION_PATTERN.finditer(text or ""):
        out.append(
            ParsedPrediction(
                start=m.group(1).strip(),
                match_type=m.group(2).strip(),
                teams=join_teams(m.group(3), m.group(4)),
                outcome=m.group(5).strip(),
                score=m.group(6).strip(),
                odds=m.group(7).strip(),
            )
        )
    return out


def parse_prediction(text: str) -> ParsedPrediction:
    parsed = parse_predictions(text)
    if not parsed:
        raise PredictionParseError("Risposta non conforme al template")
    return parsed[0]


__all__ = ["ParsedPrediction", "PredictionParseError", "parse_predictions", "parse_prediction"]
