from datetime import datetime

import pytest

from conftest import prediction_text
from core.models import MatchRecord
from predictions.parser import PredictionParseError, parse_prediction, parse_predictions
from predictions.prompt import build_prediction_prompt, format_match_for_prompt


def test_parse_literal_template():
    p = parse_prediction(prediction_text())
    assert p.start == "2025-01-01 18:00"
    assert p.match_type == "type"
    assert p.teams == "A vs. B"
    assert p.outcome == "A"
    assert p.score == "2:1"
    assert p.odds == "1.8"
    assert p.kickoff == datetime(2025, 1, 1, 18, 0)


def test_whitespace_variants_accepted():
    text = prediction_text().replace("\n", "  \n\n ").replace("]: [", "]:[")
    assert len(parse_predictions(text)) == 1


@pytest.mark.parametrize(
    "section",
    ["[Match Start]", "[Match Type]", "[Teams]", "[Match Outcome]", "[Score]", "[Odd for Match Outcome]"],
)
def test_missing_section_yields_nothing(section):
    lines = [line for line in prediction_text().splitlines() if not line.startswith(section)]
    assert parse_predictions("\n".join(lines)) == []


def test_parse_prediction_raises_on_free_text():
    with pytest.raises(PredictionParseError):
        parse_prediction("I think the home team will win.")


def test_multiple_blocks():
    text = prediction_text() + "\n\n" + prediction_text(home="C", away="D", outcome="Draw")
    parsed = parse_predictions(text)
    assert [p.teams for p in parsed] == ["A vs. B", "C vs. D"]


def test_apply_to_keeps_record_identity():
    record = MatchRecord(league="England Premier League", kickoff=datetime(2025, 1, 1, 18, 0), teams="A vs. B", fixture_id=9)
    updated = parse_prediction(prediction_text(match_type="Whatever")).apply_to(record)
    assert updated.league == "England Premier League"
    assert updated.fixture_id == 9
    assert (updated.predicted_outcome, updated.predicted_score, updated.odds) == ("A", "2:1", "1.8")


def test_to_record_invalid_date():
    p = parse_prediction(prediction_text(start="tomorrow evening"))
    assert p.kickoff is None
    with pytest.raises(PredictionParseError):
        p.to_record()


def test_to_record_reads_time_in_zone():
    p = parse_prediction(prediction_text(start="2025-05-01 19:00"))
    assert p.to_record().kickoff == datetime(2025, 5, 1, 19, 0)
    assert p.to_record("Europe/Moscow").kickoff == datetime(2025, 5, 1, 16, 0)


def test_prompt_contains_match_and_template():
    record = MatchRecord(league="Spain La Liga", kickoff=datetime(2025, 5, 1, 19, 0), teams="Barcelona vs. Getafe")
    prompt = build_prediction_prompt(format_match_for_prompt(record))
    assert "[Match Start]: [2025-05-01 19:00]" in prompt
    assert "[Teams]: [Barcelona vs. Getafe]" in prompt
    assert "[Odd for Match Outcome]: [double]" in prompt
