from datetime import date, datetime, timedelta, timezone

import pytest

from conftest import CHANNEL_CHAT, FakeLLM, prediction_text
from core.models import MatchRecord
from core.retry import RetryPolicy
from jobs.pipeline import MatchPipeline
from predictions.pipeline import PredictionService
from providers.api_football.base import FixturesProviderBase
from providers.api_football.exceptions import TransientAPIError
from telegram_bot.publisher import ChannelPublisher

NOW = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)
TODAY = date(2025, 1, 1)
LEAGUE = "England Premier League"


def _item(fixture_id, status="NS", goals=(None, None), winner=None, elapsed=None):
    return {
        "fixture": {"id": fixture_id, "date": "2025-01-01T18:00:00+00:00", "status": {"short": status, "elapsed": elapsed}},
        "league": {"name": "Premier League", "country": "England"},
        "teams": {
            "home": {"name": "A", "winner": winner == "home" if winner else None},
            "away": {"name": "B", "winner": winner == "away" if winner else None},
        },
        "goals": {"home": goals[0], "away": goals[1]},
    }


class FakeProvider(FixturesProviderBase):
    def __init__(self):
        self.fixtures = []
        self.finished = []
        self.by_id = {}
        self.fail = False
        self.calls = []

    def fetch_fixtures(self, *, league_id, season, date_from, date_to):
        self.calls.append(("fixtures", league_id, season, date_from, date_to))
        if self.fail:
            raise TransientAPIError("down")
        return list(self.fixtures)

    def fetch_finished_raw(self, *, league_id, season, date_from, date_to):
        self.calls.append(("finished", league_id, season, date_from, date_to))
        return list(self.finished)

    def fetch_fixture_raw(self, fixture_id):
        self.calls.append(("fixture", fixture_id))
        return self.by_id.get(fixture_id)


def _rec(fixture_id=1, hours=6, status="NS", teams="A vs. B"):
    kickoff = NOW.replace(tzinfo=None) + timedelta(hours=hours)
    return MatchRecord(league=LEAGUE, kickoff=kickoff, teams=teams, fixture_id=fixture_id, status=status)


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def llm():
    return FakeLLM([])


@pytest.fixture
def pipeline(store, provider, llm, telegram, bot_settings):
    predictions = PredictionService(llm, RetryPolicy(max_attempts=3, base=0.0))
    publisher = ChannelPublisher(telegram, store, CHANNEL_CHAT)
    return MatchPipeline(store, provider, predictions, publisher, bot_settings, now_fn=lambda: NOW)


def _published(store, fixture_id=1, hours=-1):
    rec = _rec(fixture_id, hours=hours)
    store.upsert_fixture(rec)
    store.set_prediction(rec.with_changes(predicted_outcome="A", predicted_score="2:1", odds="1.8"))
    store.set_message_id(rec, 500 + fixture_id)
    return store.find(rec)


def test_fetch_upcoming_predicts_new_fixtures(pipeline, provider, llm, store):
    provider.fixtures = [_rec(1), _rec(2, teams="C vs. D", status="FT")]
    llm.responses.append(prediction_text())
    stats = pipeline.fetch_upcoming_matches(TODAY)

    assert provider.calls == [("fixtures", 39, 2025, "2025-01-01", "2025-01-02")]
    assert stats["created"] == 1
    assert stats["predicted"] == 1
    saved = store.all()
    assert [r.fixture_id for r in saved] == [1]
    assert saved[0].predicted_outcome == "A"


def test_fetch_upcoming_is_idempotent(pipeline, provider, llm, store):
    provider.fixtures = [_rec(1)]
    llm.responses.append(prediction_text())
    pipeline.fetch_upcoming_matches(TODAY)
    stats = pipeline.fetch_upcoming_matches(TODAY)
    assert stats["created"] == 0
    assert stats["predicted"] == 0
    assert len(store.all()) == 1
    assert len(llm.prompts) == 1


def test_fetch_upcoming_purges_unpredictable(pipeline, provider, llm, store):
    provider.fixtures = [_rec(1)]
    llm.responses.extend(["x", "y", "z"])
    stats = pipeline.fetch_upcoming_matches(TODAY)
    assert stats["purged"] == 1
    assert store.all() == []


def test_provider_error_is_logged_not_raised(pipeline, provider):
    provider.fail = True
    stats = pipeline.fetch_upcoming_matches(TODAY)
    assert stats["received"] == 0


def test_publish_pending(pipeline, store, telegram, provider, llm):
    provider.fixtures = [_rec(1, hours=6), _rec(2, hours=20, teams="C vs. D")]
    llm.responses.extend([prediction_text(), prediction_text(home="C", away="D")])
    pipeline.fetch_upcoming_matches(TODAY)

    assert pipeline.publish_pending() == 1
    assert store.get_by_fixture_id(1).telegram_message_id is not None
    assert store.get_by_fixture_id(2).telegram_message_id is None
    assert pipeline.publish_pending() == 0
    assert len(telegram.texts_for(CHANNEL_CHAT)) == 1


def test_publish_pending_continues_after_store_error(pipeline, store, telegram, provider, llm, monkeypatch):
    provider.fixtures = [_rec(1, hours=2), _rec(2, hours=4, teams="C vs. D")]
    llm.responses.extend([prediction_text(), prediction_text(home="C", away="D")])
    pipeline.fetch_upcoming_matches(TODAY)

    original = store.set_message_id

    def flaky(record, message_id):
        if record.fixture_id == 1:
            raise RuntimeError("database is locked")
        return original(record, message_id)

    monkeypatch.setattr(store, "set_message_id", flaky)
    assert pipeline.publish_pending() == 1
    assert store.get_by_fixture_id(1).telegram_message_id is None
    assert store.get_by_fixture_id(2).telegram_message_id is not None


def test_live_update_edits_message(pipeline, provider, store, telegram):
    _published(store)
    provider.by_id[1] = _item(1, status="2H", goals=(1, 0), elapsed=55)
    assert pipeline.update_live_matches() == 1

    saved = store.get_by_fixture_id(1)
    assert (saved.status, saved.live_score, saved.elapsed) == ("2H", "1:0", 55)
    assert saved.actual_outcome is None
    chat, message_id, text = telegram.edits[-1]
    assert (chat, message_id) == (CHANNEL_CHAT, 501)
    assert text.endswith("Live: 1:0 (55')")


def test_live_update_resolves_finished(pipeline, provider, store, telegram):
    _published(store)
    provider.by_id[1] = _item(1, status="FT", goals=(2, 1), winner="home", elapsed=90)
    assert pipeline.update_live_matches() == 1

    saved = store.get_by_fixture_id(1)
    assert saved.actual_outcome == "A"
    assert saved.actual_score == "2:1"
    assert "Actual Outcome: A✅" in telegram.edits[-1][2]
    assert store.live_candidates(NOW) == []


def test_live_update_not_started_is_skipped(pipeline, provider, store, telegram):
    _published(store)
    provider.by_id[1] = _item(1, status="NS")
    assert pipeline.update_live_matches() == 0
    assert telegram.edits == []


def test_live_update_resolves_awarded(pipeline, provider, store, telegram):
    _published(store)
    provider.by_id[1] = _item(1, status="AWD", goals=(3, 0), winner="home")
    assert pipeline.update_live_matches() == 1
    assert store.get_by_fixture_id(1).actual_outcome == "A"
    assert store.live_candidates(NOW) == []


@pytest.mark.parametrize("status", ["PST", "CANC", "ABD"])
def test_stopped_fixture_leaves_live_set(pipeline, provider, store, telegram, status):
    _published(store)
    provider.by_id[1] = _item(1, status=status)
    assert pipeline.update_live_matches() == 0
    assert store.get_by_fixture_id(1).status == status
    assert telegram.edits == []

    # i giri successivi non interrogano più l'API
    for minutes in range(10, 24 * 60, 10):
        pipeline.update_live_matches(NOW + timedelta(minutes=minutes))
    assert [c for c in provider.calls if c[0] == "fixture"] == [("fixture", 1)]


def test_stale_unresolved_fixture_is_not_polled(pipeline, provider, store):
    _published(store, hours=-30)
    provider.by_id[1] = _item(1, status="SUSP")
    assert pipeline.update_live_matches() == 0
    assert provider.calls == []


def test_not_modified_edit_is_tolerated(pipeline, provider, store, telegram, not_modified_error):
    _published(store)
    provider.by_id[1] = _item(1, status="1H", goals=(0, 0), elapsed=10)
    telegram.edit_error = not_modified_error
    assert pipeline.update_live_matches() == 1


def test_fetch_past_results(pipeline, provider, store, telegram):
    _published(store)
    provider.finished = [_item(1, status="FT", goals=(0, 0)), _item(99, status="FT")]
    assert pipeline.fetch_past_results(TODAY) == 1
    assert provider.calls[0] == ("finished", 39, 2025, "2024-12-31", "2025-01-01")

    saved = store.get_by_fixture_id(1)
    assert saved.actual_outcome == "Draw"
    assert saved.actual_score == "0:0"
    assert "Actual Outcome: Draw❌" in telegram.edits[-1][2]
    # risultato già scritto: nessun secondo aggiornamento
    assert pipeline.fetch_past_results(TODAY) == 0


def test_accuracy_summary_sent_to_channel(pipeline, store, telegram):
    rec = MatchRecord(
        league=LEAGUE,
        kickoff=NOW.replace(tzinfo=None) - timedelta(hours=3),
        teams="A vs. B",
        fixture_id=1,
        predicted_outcome="A",
        actual_outcome="B",
    )
    store.insert(rec)
    report = pipeline.send_daily_accuracy()
    assert report.total == 1
    assert telegram.texts_for(CHANNEL_CHAT) == ["The accuracy of predictions in the last 24 hours is 0.00% (0/1)."]


def test_accuracy_summary_empty_period(pipeline, telegram):
    pipeline.send_weekly_accuracy()
    assert telegram.texts_for(CHANNEL_CHAT) == ["No matches with results in the last week."]
