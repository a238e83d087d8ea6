from datetime import datetime

from conftest import FakeLLM, prediction_text
from core.models import MatchRecord
from core.retry import RetryPolicy
from monitoring.prometheus_exporter import PREDICTIONS_TOTAL
from predictions.llm_client import PredictionError
from predictions.pipeline import PredictionService


def _record():
    return MatchRecord(league="England Premier League", kickoff=datetime(2025, 1, 1, 18, 0), teams="A vs. B", fixture_id=1)


def _service(responses, attempts=3):
    llm = FakeLLM(responses)
    return PredictionService(llm, RetryPolicy(max_attempts=attempts, base=0.0)), llm


def test_predict_and_store_writes_prediction(store):
    store.upsert_fixture(_record())
    service, llm = _service([prediction_text()])
    updated = service.predict_and_store(store, _record())
    assert updated.predicted_outcome == "A"
    saved = store.find(_record())
    assert (saved.predicted_outcome, saved.predicted_score, saved.odds) == ("A", "2:1", "1.8")
    assert len(llm.prompts) == 1
    assert "[Teams]: [A vs. B]" in llm.prompts[0]


def test_retry_after_unparseable_response(store):
    store.upsert_fixture(_record())
    service, llm = _service(["no idea", PredictionError("timeout"), prediction_text()])
    assert service.predict_and_store(store, _record()) is not None
    assert len(llm.prompts) == 3


def test_all_attempts_fail_purges_record(store):
    store.upsert_fixture(_record())
    before = PREDICTIONS_TOTAL.labels(result="purged")._value.get()
    service, llm = _service(["nope", "still nope", "never"])
    assert service.predict_and_store(store, _record()) is None
    assert len(llm.prompts) == 3
    assert store.find(_record()) is None
    assert PREDICTIONS_TOTAL.labels(result="purged")._value.get() == before + 1


def test_picks_block_matching_teams(store):
    store.upsert_fixture(_record())
    text = prediction_text(home="C", away="D", outcome="C") + "\n" + prediction_text(outcome="Draw")
    service, _ = _service([text])
    assert service.predict_and_store(store, _record()).predicted_outcome == "Draw"


def test_predict_manual():
    service, llm = _service([prediction_text(match_type="Spain La Liga", home="Barcelona", away="Getafe", outcome="Barcelona")])
    parsed = service.predict_manual("2025-01-01 18:00 Spain La Liga Barcelona vs. Getafe")
    assert parsed.teams == "Barcelona vs. Getafe"
    assert "Barcelona vs. Getafe" in llm.prompts[0]
