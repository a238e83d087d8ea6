from __future__ import annotations

from typing import Optional

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    generate_latest,
    start_http_server,
)
from core.config import Settings, get_settings
from core.logging import get_logger

logger = get_logger("monitoring.prometheus_exporter")

# Registry dedicato (non il default globale di prometheus_client)
_REGISTRY = CollectorRegistry()

JOB_RUNS_TOTAL = Counter("bot_job_runs_total", "Esecuzioni job schedulati", ["job"], registry=_REGISTRY)
JOB_FAILURES_TOTAL = Counter("bot_job_failures_total", "Job terminati con eccezione", ["job"], registry=_REGISTRY)
PREDICTIONS_TOTAL = Counter(
    "bot_predictions_total", "Predizioni richieste al modello per esito", ["result"], registry=_REGISTRY
)
TELEGRAM_MESSAGES_TOTAL = Counter(
    "bot_telegram_messages_total", "Messaggi Telegram per azione", ["action"], registry=_REGISTRY
)
LAST_FETCH_FIXTURES = Gauge(
    "bot_last_fetch_fixtures", "Fixtures ricevute nell'ultimo fetch upcoming", registry=_REGISTRY
)


def generate_prometheus_text() -> bytes:
    return generate_latest(_REGISTRY)


def start_exporter(settings: Optional[Settings] = None) -> bool:
    """Avvia l'endpoint HTTP /metrics se ENABLE_PROMETHEUS_EXPORTER=1."""
    settings = settings or get_settings()
    if not settings.enable_prometheus_exporter:
        logger.debug("Exporter disabilitato, skip avvio")
        return False
    start_http_server(settings.prometheus_port, registry=_REGISTRY)
    logger.info("Prometheus exporter avviato su porta %s", settings.prometheus_port)
    return True


__all__ = [
    "JOB_RUNS_TOTAL",
    "JOB_FAILURES_TOTAL",
    "PREDICTIONS_TOTAL",
    "TELEGRAM_MESSAGES_TOTAL",
    "LAST_FETCH_FIXTURES",
    "generate_prometheus_text",
    "start_exporter",
    "_REGISTRY",
]
