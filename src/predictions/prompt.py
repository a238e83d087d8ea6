from __future__ import annotations

from core.models import MatchRecord

PREDICTION_INSTRUCTIONS = (
    "Make a prediction for the outcome of these football matches that will take place in the near future, "
    "for full time, taking into account all possible factors, expert opinions and bookmakers' forecasts "
    "for the matches\n"
)

RESPONSE_TEMPLATE = (
    "You are a data assistant. Always strictly provide responses in the following format without any text "
    "formatting other than square brackets and don't change match start time, match type and teams:\n"
    "\n"
    "[Match Start]: [yyyy-MM-dd HH:mm]\n"
    "[Match Type]: []\n"
    "[Teams]: [Team1 vs. Team2]\n"
    "[Match Outcome]: [Team/Draw]\n"
    "[Score]: [int:int]\n"
    "[Odd for Match Outcome]: [double]\n"
    "\n"
)


def format_match_for_prompt(record: MatchRecord) -> str:
    return (
        f"[Match Start]: [{record.kickoff_display}]\n"
        f"[Match Type]: [{record.league}]\n"
        f"[Teams]: [{record.teams}]"
    )


def build_prediction_prompt(matches_text: str) -> str:
    return f"{PREDICTION_INSTRUCTIONS}: {matches_text.strip()} \n{RESPONSE_TEMPLATE}"


__all__ = ["build_prediction_prompt", "format_match_for_prompt", "RESPONSE_TEMPLATE"]
