from __future__ import annotations

import threading
import time
from typing import Any, Dict, Optional

import requests

from core.config import Settings, get_settings
from core.logging import get_logger
from core.rate_limit import TokenBucket
from core.retry import RetryPolicy
from .exceptions import RateLimitError, TransientAPIError

log = get_logger(__name__)

_RAPIDAPI_HOST = "api-football-v1.p.rapidapi.com"
_REMAINING_HEADERS = ("x-ratelimit-requests-remaining", "x-ratelimit-remaining")


class APIFootballHttpClient:
    """
    Client HTTP con retry e backoff per API Football (versione requests).
    Gestisce rate limit (429), errori transitori (5xx, network) e ritorna JSON.

    Ogni tentativo consuma un token dal bucket condiviso (limite lato client),
    l'header x-ratelimit-requests-remaining viene solo loggato.

    Telemetria minima:
      - _last_attempts: numero di tentativi effettuati nella ultima chiamata
      - _last_retries: retries (attempts - 1)
      - _last_latency_ms: durata totale in millisecondi
      - _last_status: ultimo HTTP status code ricevuto (se nessuna risposta -> None)
      - _last_remaining: quota residua riportata dall'API (stringa, se presente)
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        bucket: Optional[TokenBucket] = None,
        stop_event: Optional[threading.Event] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._session = requests.Session()
        if self._settings.api_football_rapidapi:
            self._session.headers.update(
                {
                    "X-RapidAPI-Key": self._settings.api_football_key,
                    "X-RapidAPI-Host": _RAPIDAPI_HOST,
                    "Accept": "application/json",
                }
            )
        else:
            self._session.headers.update(
                {
                    "x-apisports-key": self._settings.api_football_key,
                    "Accept": "application/json",
                }
            )
        self._base_url = self._settings.api_football_base_url
        self._timeout = self._settings.api_football_timeout
        self._policy = RetryPolicy(
            max_attempts=self._settings.api_football_max_attempts,
            base=self._settings.api_football_backoff_base,
            factor=self._settings.api_football_backoff_factor,
            jitter=self._settings.api_football_backoff_jitter,
            stop_event=stop_event,
        )
        self._bucket = bucket or TokenBucket(self._settings.api_football_rate_per_minute, name="api_football")

        self._last_attempts: int = 0
        self._last_retries: int = 0
        self._last_latency_ms: float = 0.0
        self._last_status: Optional[int] = None
        self._last_remaining: Optional[str] = None

    @property
    def max_attempts(self) -> int:
        return self._policy.max_attempts

    def _finish(self, attempt: int, start: float) -> None:
        self._last_attempts = attempt
        self._last_retries = attempt - 1
        self._last_latency_ms = (time.perf_counter() - start) * 1000

    def _log_remaining(self, resp: requests.Response) -> None:
        headers = resp.headers or {}
        for name in _REMAINING_HEADERS:
            value = headers.get(name)
            if value is not None:
                self._last_remaining = value
                log.info("Chiamate API residue: %s", value, extra={"remaining_requests": value})
                return

    def api_get(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        log.info("api_football GET %s params=%s", path, params)
        url = self._base_url + path

        last_status: Optional[int] = None
        last_reason: Optional[str] = None
        start_overall = time.perf_counter()
        max_attempts = self._policy.max_attempts

        self._last_attempts = 0
        self._last_retries = 0
        self._last_latency_ms = 0.0
        self._last_status = None

        for attempt in range(1, max_attempts + 1):
            self._bucket.acquire()
            try:
                resp = self._session.get(url, params=params, timeout=self._timeout)
            except (requests.Timeout, requests.ConnectionError) as e:
                last_reason = f"network:{e.__class__.__name__}"
                if attempt == max_attempts:
                    self._finish(attempt, start_overall)
                    self._last_status = None
                    raise TransientAPIError(
                        f"Errore di rete persistente dopo {attempt} tentativi: {e}"
                    ) from e
                wait = self._policy.wait(attempt)
                log.warning(
                    "retry attempt=%s wait=%.2fs reason=%s",
                    attempt,
                    wait,
                    last_reason,
                    extra={"attempt": attempt},
                )
                continue

            last_status = resp.status_code
            self._last_status = last_status
            self._log_remaining(resp)

            # Successo
            if 200 <= resp.status_code < 300:
                try:
                    data = resp.json()
                except ValueError as e:
                    self._finish(attempt, start_overall)
                    raise RuntimeError(
                        f"Risposta non valida (non JSON) status={resp.status_code}"
                    ) from e
                self._finish(attempt, start_overall)
                return data

            # Rate limit 429
            if resp.status_code == 429:
                last_reason = "rate_limit"
                if attempt == max_attempts:
                    self._finish(attempt, start_overall)
                    raise RateLimitError(
                        f"Rate limit dopo {attempt} tentativi (429)."
                    )
                retry_after = 0.0
                retry_after_header = resp.headers.get("Retry-After")
                if retry_after_header:
                    try:
                        retry_after = float(retry_after_header)
                    except ValueError:
                        retry_after = 0.0
                wait = self._policy.wait(attempt, minimum=retry_after)
                log.warning(
                    "retry attempt=%s wait=%.2fs reason=rate_limit",
                    attempt,
                    wait,
                    extra={"attempt": attempt},
                )
                continue

            # Errori transitori server
            if resp.status_code in (500, 502, 503, 504):
                last_reason = f"http_{resp.status_code}"
                if attempt == max_attempts:
                    self._finish(attempt, start_overall)
                    raise TransientAPIError(
                        f"Status {resp.status_code} persistente dopo {attempt} tentativi."
                    )
                wait = self._policy.wait(attempt)
                log.warning(
                    "retry attempt=%s wait=%.2fs reason=http_%s",
                    attempt,
                    wait,
                    resp.status_code,
                    extra={"attempt": attempt},
                )
                continue

            # Errori 4xx non recuperabili
            try:
                payload = resp.json()
            except ValueError:
                payload = {"raw": resp.text}
            self._finish(attempt, start_overall)
            if 400 <= resp.status_code < 500:
                raise ValueError(
                    f"Richiesta API fallita (status={resp.status_code}) non retriable: {payload}"
                )
            raise RuntimeError(
                f"Risposta inattesa (status={resp.status_code}) non retriable: {payload}"
            )

        # Non dovrebbe mai arrivare qui
        self._finish(max_attempts, start_overall)
        raise RuntimeError(
            f"Fallimento imprevisto path={path} last_status={last_status} reason={last_reason}"
        )

    def get_stats(self) -> Dict[str, Any]:
        """
        Ritorna telemetria dell'ultima chiamata:
          attempts: tentativi totali
          retries: tentativi falliti (attempts - 1)
          latency_ms: durata complessiva
          last_status: ultimo status code visto
          remaining: quota residua riportata dall'API
        """
        return {
            "attempts": self._last_attempts,
            "retries": self._last_retries,
            "latency_ms": round(self._last_latency_ms, 2),
            "last_status": self._last_status,
            "remaining": self._last_remaining,
        }


def get_http_client(
    settings: Optional[Settings] = None,
    *,
    stop_event: Optional[threading.Event] = None,
) -> APIFootballHttpClient:
    """
    Restituisce sempre una nuova istanza per far sì che i test che
    modificano le variabili d'ambiente abbiano effetto immediato.
    """
    return APIFootballHttpClient(settings, stop_event=stop_event)
