from datetime import datetime

from core.models import MatchRecord
from telegram_bot.formatting import (
    display_time,
    format_match,
    format_match_live,
    format_match_with_result,
    format_top_match,
)


def _rec(**kw):
    base = dict(
        league="England Premier League",
        kickoff=datetime(2025, 1, 1, 18, 0),
        teams="A vs. B",
        fixture_id=1,
        predicted_outcome="A",
        predicted_score="2:1",
        odds="1.8",
    )
    base.update(kw)
    return MatchRecord(**base)


def test_format_match():
    assert format_match(_rec()) == (
        "Match Time: 2025-01-01 18:00\n"
        "Match Type: England Premier League\n"
        "Teams: A vs. B\n"
        "Predicted Outcome: A\n"
        "Predicted Score: 2:1\n"
        "Odds: 1.8"
    )


def test_display_time_unknown_zone_falls_back_to_utc():
    assert display_time(_rec(), "UTC") == "2025-01-01 18:00"
    assert display_time(_rec(), "Not/AZone") == "2025-01-01 18:00"


def test_format_live():
    text = format_match_live(_rec(live_score="1:0", elapsed=55))
    assert text.endswith("Live: 1:0 (55')")


def test_format_result_correct_and_wrong():
    ok = format_match_with_result(_rec(actual_outcome="a", actual_score="2:1"))
    assert "Actual Outcome: a✅" in ok
    assert "Actual Score: 2:1" in ok
    ko = format_match_with_result(_rec(actual_outcome="Draw", actual_score="1:1"))
    assert "Actual Outcome: Draw❌" in ko


def test_format_top_match():
    assert format_top_match(_rec()).startswith("[Top Match]\nMatch Time: 2025-01-01 18:00")
