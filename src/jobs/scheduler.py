from __future__ import annotations

from datetime import datetime, timezone
from functools import partial
from typing import Any, Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler

from core.config import Settings
from core.logging import get_logger
from core.retry import RetryCancelled
from monitoring.prometheus_exporter import JOB_FAILURES_TOTAL, JOB_RUNS_TOTAL
from .pipeline import MatchPipeline

logger = get_logger("jobs.scheduler")

# un job lento non si sovrappone alla sua esecuzione successiva
JOB_DEFAULTS = {"max_instances": 1, "coalesce": True, "misfire_grace_time": 300}


def run_job(name: str, fn: Callable[[], Any]) -> Optional[Any]:
    """Esegue un job registrando metriche; le eccezioni vengono loggate, non propagate."""
    JOB_RUNS_TOTAL.labels(job=name).inc()
    logger.info("Job avviato", extra={"job": name})
    try:
        result = fn()
    except RetryCancelled:
        logger.info("Job interrotto (shutdown)", extra={"job": name})
        return None
    except Exception:
        JOB_FAILURES_TOTAL.labels(job=name).inc()
        logger.exception("Job fallito", extra={"job": name})
        return None
    logger.info("Job completato", extra={"job": name})
    return result


def _add(scheduler: BackgroundScheduler, name: str, fn: Callable[[], Any], trigger: str, **trigger_args: Any) -> None:
    scheduler.add_job(
        partial(run_job, name, fn),
        trigger,
        id=name,
        name=name,
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        **trigger_args,
    )


def build_scheduler(
    pipeline: MatchPipeline,
    settings: Settings,
    *,
    run_fetch_at_start: bool = True,
) -> BackgroundScheduler:
    """
    Crea (senza avviarlo) lo scheduler con i job del bot.
    Gli orari cron sono nel fuso BOT_TIMEZONE.
    """
    scheduler = BackgroundScheduler(timezone=settings.bot_timezone, job_defaults=JOB_DEFAULTS)

    fetch_args: dict = {"hour": "0,8,16", "minute": 0}
    if run_fetch_at_start:
        fetch_args["next_run_time"] = datetime.now(timezone.utc)
    _add(scheduler, "fetch_upcoming", pipeline.fetch_upcoming_matches, "cron", **fetch_args)

    _add(scheduler, "live_updates", pipeline.update_live_matches, "interval", minutes=settings.live_poll_minutes)
    _add(scheduler, "publish_pending", pipeline.publish_pending, "interval", minutes=settings.live_poll_minutes)
    _add(scheduler, "past_results", pipeline.fetch_past_results, "cron", hour=6, minute=0)

    _add(scheduler, "accuracy_daily", pipeline.send_daily_accuracy, "cron", hour=23, minute=55)
    _add(scheduler, "accuracy_weekly", pipeline.send_weekly_accuracy, "cron", day_of_week="mon", hour=0, minute=5)
    _add(scheduler, "accuracy_monthly", pipeline.send_monthly_accuracy, "cron", day=1, hour=0, minute=10)
    _add(scheduler, "accuracy_yearly", pipeline.send_yearly_accuracy, "cron", month=1, day=1, hour=0, minute=15)

    logger.info("Scheduler configurato: %s job", len(scheduler.get_jobs()))
    return scheduler


__all__ = ["build_scheduler", "run_job", "JOB_DEFAULTS"]
