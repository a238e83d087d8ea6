import sys

from core.config import _reset_settings_cache_for_tests, get_settings
from core.logging import get_logger
from jobs.app import build_app
from jobs.scheduler import run_job

log = get_logger("cycle")


def main() -> int:
    """
    Ciclo singolo (uso da cron):
    1) Reload settings
    2) Fetch fixtures + predizioni
    3) Risultati di ieri/oggi
    4) Pubblicazione dei match in partenza
    """
    _reset_settings_cache_for_tests()
    try:
        settings = get_settings()
        app = build_app(settings)
    except ValueError as e:
        log.error("Config non valida: %s", e)
        return 1

    log.info("cycle_start", extra={"job": "cycle"})
    try:
        run_job("fetch_upcoming", app.pipeline.fetch_upcoming_matches)
        run_job("past_results", app.pipeline.fetch_past_results)
        run_job("publish_pending", app.pipeline.publish_pending)
    finally:
        app.store.close()

    log.info("cycle_complete", extra={"job": "cycle"})
    return 0


if __name__ == "__main__":
    sys.exit(main())
