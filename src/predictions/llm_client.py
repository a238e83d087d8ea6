from __future__ import annotations

import time
from typing import Any, Optional

from openai import OpenAI, OpenAIError

from core.config import Settings, get_settings
from core.logging import get_logger
from core.rate_limit import TokenBucket

logger = get_logger("predictions.llm_client")


class PredictionError(Exception):
    """Chiamata al modello fallita (rete, quota, risposta vuota)."""


class LLMClient:
    """
    Wrapper minimale su OpenAI chat completions.
    Il client OpenAI è iniettabile (test) e viene creato alla prima chiamata.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        client: Any = None,
        bucket: Optional[TokenBucket] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._client = client
        self._bucket = bucket or TokenBucket(self._settings.openai_rate_per_minute, name="openai")

    def _get_client(self) -> Any:
        if self._client is None:
            if not self._settings.openai_api_key:
                raise PredictionError("OPENAI_API_KEY non impostata")
            self._client = OpenAI(
                api_key=self._settings.openai_api_key,
                timeout=self._settings.openai_timeout,
                max_retries=0,
            )
        return self._client

    def complete(self, prompt: str) -> str:
        client = self._get_client()
        self._bucket.acquire()
        start = time.perf_counter()
        try:
            response = client.chat.completions.create(
                model=self._settings.openai_model,
                messages=[{"role": "user", "content": prompt}],
                max_tokens=self._settings.openai_max_tokens,
                temperature=self._settings.openai_temperature,
            )
        except OpenAIError as exc:
            raise PredictionError(f"Chiamata OpenAI fallita: {exc}") from exc
        latency = time.perf_counter() - start
        logger.info("Risposta %s ricevuta in %.1fs", self._settings.openai_model, latency)

        choices = getattr(response, "choices", None) or []
        if not choices:
            raise PredictionError("Risposta OpenAI senza choices")
        content = choices[0].message.content
        if not content:
            raise PredictionError("Risposta OpenAI vuota")
        return content


__all__ = ["LLMClient", "PredictionError"]
