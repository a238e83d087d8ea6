from __future__ import annotations

from typing import List, Optional

from core.logging import get_logger
from core.models import MatchRecord
from core.persistence import MatchStore
from core.retry import RetryPolicy
from monitoring.prometheus_exporter import PREDICTIONS_TOTAL
from .llm_client import LLMClient
from .parser import ParsedPrediction, PredictionParseError, parse_predictions
from .prompt import build_prediction_prompt, format_match_for_prompt

logger = get_logger("predictions.pipeline")


def _pick_for_record(candidates: List[ParsedPrediction], record: MatchRecord) -> ParsedPrediction:
    """Preferisce il blocco con le stesse squadre; altrimenti il primo."""
    wanted = record.teams.strip().lower()
    for cand in candidates:
        if cand.teams.strip().lower() == wanted:
            return cand
    return candidates[0]


class PredictionService:
    """
    Ottiene una predizione per una fixture con retry a backoff esponenziale.
    Una risposta non conforme al template conta come tentativo fallito.
    """

    def __init__(self, llm: LLMClient, policy: RetryPolicy) -> None:
        self._llm = llm
        self._policy = policy

    def _attempt(self, prompt: str, record: Optional[MatchRecord], attempt: int) -> ParsedPrediction:
        text = self._llm.complete(prompt)
        candidates = parse_predictions(text)
        if not candidates:
            raise PredictionParseError(f"Risposta non conforme al template (attempt={attempt})")
        if record is None:
            return candidates[0]
        return _pick_for_record(candidates, record)

    def predict(self, record: MatchRecord) -> Optional[ParsedPrediction]:
        prompt = build_prediction_prompt(format_match_for_prompt(record))
        parsed = self._policy.call(
            lambda attempt: self._attempt(prompt, record, attempt),
            label=f"predizione {record.teams}",
        )
        if parsed is not None:
            logger.info(
                "Predizione ottenuta per %s: %s",
                record.teams,
                parsed.outcome,
                extra={"fixture_id": record.fixture_id, "league": record.league},
            )
        return parsed

    def predict_and_store(self, store: MatchStore, record: MatchRecord) -> Optional[MatchRecord]:
        """
        Scrive la predizione sul record salvato.
        Se tutti i tentativi falliscono il record viene eliminato.
        """
        parsed = self.predict(record)
        if parsed is None:
            store.delete(record)
            PREDICTIONS_TOTAL.labels(result="purged").inc()
            logger.error(
                "Predizione non ottenuta per %s dopo %s tentativi: match eliminato",
                record.teams,
                self._policy.max_attempts,
                extra={"fixture_id": record.fixture_id, "league": record.league},
            )
            return None
        updated = parsed.apply_to(record)
        store.set_prediction(updated)
        PREDICTIONS_TOTAL.labels(result="ok").inc()
        return updated

    def predict_manual(self, text: str) -> Optional[ParsedPrediction]:
        """Predizione per testo libero inserito da un admin (/newmatch)."""
        prompt = build_prediction_prompt(text)
        parsed = self._policy.call(
            lambda attempt: self._attempt(prompt, None, attempt),
            label="predizione manuale",
        )
        PREDICTIONS_TOTAL.labels(result="ok" if parsed else "failed").inc()
        return parsed


__all__ = ["PredictionService"]
