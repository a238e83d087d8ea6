from __future__ import annotations

import signal
import sys
import threading

from core.config import get_settings
from core.logging import get_logger
from jobs.app import build_app
from jobs.scheduler import build_scheduler
from monitoring.prometheus_exporter import start_exporter
from telegram_bot.bot import BotRunner

log = get_logger("scripts.run_bot")


def main() -> int:
    try:
        settings = get_settings()
    except ValueError as e:
        log.error("Config non valida: %s", e)
        return 1

    stop_event = threading.Event()

    def _stop(signum, frame) -> None:
        log.info("Segnale %s ricevuto, arresto in corso", signum)
        stop_event.set()

    signal.signal(signal.SIGINT, _stop)
    signal.signal(signal.SIGTERM, _stop)

    try:
        app = build_app(settings, stop_event)
    except ValueError as e:
        log.error("Config non valida: %s", e)
        return 1

    start_exporter(settings)
    scheduler = build_scheduler(app.pipeline, settings)
    scheduler.start()
    log.info("Scheduler avviato: %s job", len(scheduler.get_jobs()))

    runner = BotRunner(app.telegram, app.dispatcher, settings, stop_event)
    try:
        runner.run()
    finally:
        stop_event.set()
        scheduler.shutdown(wait=True)
        app.store.close()
        log.info("Bot arrestato")
    return 0


if __name__ == "__main__":
    sys.exit(main())
