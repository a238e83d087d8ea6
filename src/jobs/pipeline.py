from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from core.accuracy import (
    AccuracyReport,
    accuracy_for_period,
    days_in_previous_month,
    days_in_previous_year,
    format_accuracy_message,
    period_label,
)
from core.config import LeagueConfig, Settings
from core.logging import get_logger
from core.models import MatchRecord
from core.normalization import (
    FINISHED_STATUSES,
    LIVE_STATUSES,
    STOPPED_STATUSES,
    normalize_api_football_fixture,
    outcome_from_api,
    score_from_api,
)
from core.persistence import MatchStore
from core.retry import RetryCancelled
from monitoring.prometheus_exporter import LAST_FETCH_FIXTURES
from predictions.pipeline import PredictionService
from providers.api_football.base import FixturesProviderBase
from telegram_bot.formatting import format_match_live, format_match_with_result
from telegram_bot.publisher import ChannelPublisher

logger = get_logger("jobs.pipeline")


def _iso(day: date) -> str:
    return day.strftime("%Y-%m-%d")


def _utc_today(now: datetime) -> date:
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    return now.date()


class MatchPipeline:
    """
    Operazioni periodiche del bot: fetch fixtures, predizioni, pubblicazione,
    aggiornamenti live, risultati e report di accuracy.

    Un errore su una lega o su una fixture viene loggato e non interrompe il
    resto del batch; RetryCancelled (stop del bot) invece si propaga.
    """

    def __init__(
        self,
        store: MatchStore,
        provider: FixturesProviderBase,
        predictions: PredictionService,
        publisher: ChannelPublisher,
        settings: Settings,
        *,
        now_fn: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.store = store
        self.provider = provider
        self.predictions = predictions
        self.publisher = publisher
        self.settings = settings
        self._now = now_fn

    # -- fixtures + predizioni ------------------------------------------------

    def fetch_upcoming_matches(self, today: Optional[date] = None) -> Dict[str, int]:
        today = today or _utc_today(self._now())
        tomorrow = today + timedelta(days=1)
        stats = {"received": 0, "created": 0, "predicted": 0, "purged": 0}

        for league in self.settings.leagues:
            try:
                self._fetch_league(league, today, tomorrow, stats)
            except RetryCancelled:
                raise
            except Exception:
                logger.exception("Fetch fixtures fallito", extra={"league": league.league_id})

        LAST_FETCH_FIXTURES.set(stats["received"])
        logger.info("Fetch upcoming completato: %s", stats, extra={"job": "fetch_upcoming"})
        return stats

    def _fetch_league(self, league: LeagueConfig, today: date, tomorrow: date, stats: Dict[str, int]) -> None:
        records = self.provider.fetch_fixtures(
            league_id=league.league_id,
            season=league.season,
            date_from=_iso(today),
            date_to=_iso(tomorrow),
        )
        stats["received"] += len(records)
        for rec in records:
            if rec.status in FINISHED_STATUSES:
                continue
            try:
                saved, created = self.store.upsert_fixture(rec)
                if created:
                    stats["created"] += 1
                if saved.is_predicted:
                    continue
                if self.predictions.predict_and_store(self.store, saved) is None:
                    stats["purged"] += 1
                else:
                    stats["predicted"] += 1
            except RetryCancelled:
                raise
            except Exception:
                logger.exception(
                    "Gestione fixture fallita %s", rec.teams, extra={"fixture_id": rec.fixture_id}
                )

    # -- risultati --------------------------------------------------------------

    def _resolve(self, stored: MatchRecord, item: Dict[str, Any]) -> Optional[MatchRecord]:
        """Scrive esito e punteggio finali e aggiorna il messaggio del canale."""
        live = normalize_api_football_fixture(item)
        resolved = stored.with_changes(
            actual_outcome=outcome_from_api(item),
            actual_score=score_from_api(item),
            status=live.status if live else stored.status,
            elapsed=live.elapsed if live else stored.elapsed,
        )
        if not self.store.set_result(resolved):
            return None
        current = self.store.find(stored) or resolved
        if current.is_published:
            self.publisher.update(current, format_match_with_result(current, self.publisher.tz_name))
        return current

    def fetch_past_results(self, today: Optional[date] = None) -> int:
        today = today or _utc_today(self._now())
        yesterday = today - timedelta(days=1)
        resolved = 0

        for league in self.settings.leagues:
            try:
                items = self.provider.fetch_finished_raw(
                    league_id=league.league_id,
                    season=league.season,
                    date_from=_iso(yesterday),
                    date_to=_iso(today),
                )
            except RetryCancelled:
                raise
            except Exception:
                logger.exception("Fetch risultati fallito", extra={"league": league.league_id})
                continue

            for item in items:
                fixture_id = (item.get("fixture") or {}).get("id")
                if fixture_id is None:
                    continue
                try:
                    stored = self.store.get_by_fixture_id(int(fixture_id))
                    if stored is None or stored.is_resolved:
                        continue
                    if self._resolve(stored, item) is not None:
                        resolved += 1
                except RetryCancelled:
                    raise
                except Exception:
                    logger.exception("Aggiornamento risultato fallito", extra={"fixture_id": fixture_id})

        logger.info("Risultati aggiornati: %s", resolved, extra={"job": "past_results"})
        return resolved

    # -- canale -------------------------------------------------------------

    def publish_pending(self, now: Optional[datetime] = None) -> int:
        now = now or self._now()
        published = 0
        for rec in self.store.pending_publication(now, self.settings.publish_window_hours):
            try:
                if self.publisher.publish(rec) is not None:
                    published += 1
            except RetryCancelled:
                raise
            except Exception:
                logger.exception("Pubblicazione fallita %s", rec.teams, extra={"fixture_id": rec.fixture_id})
        if published:
            logger.info("Match pubblicati: %s", published, extra={"job": "publish_pending"})
        return published

    def update_live_matches(self, now: Optional[datetime] = None) -> int:
        now = now or self._now()
        updated = 0
        for stored in self.store.live_candidates(now):
            try:
                if self._update_live(stored):
                    updated += 1
            except RetryCancelled:
                raise
            except Exception:
                logger.exception("Aggiornamento live fallito %s", stored.teams, extra={"fixture_id": stored.fixture_id})
        return updated

    def _update_live(self, stored: MatchRecord) -> bool:
        item = self.provider.fetch_fixture_raw(int(stored.fixture_id))
        if item is None:
            return False
        live = normalize_api_football_fixture(item)
        if live is None:
            return False

        if live.status in FINISHED_STATUSES:
            return self._resolve(stored, item) is not None

        if live.status in STOPPED_STATUSES:
            logger.info("Match fermo (%s), escluso dagli update live", live.status, extra={"fixture_id": stored.fixture_id})
            self.store.update_live(stored.with_changes(status=live.status))
            return False

        if live.status not in LIVE_STATUSES:
            logger.debug("Match non ancora iniziato (%s)", live.status, extra={"fixture_id": stored.fixture_id})
            return False

        progress = stored.with_changes(status=live.status, live_score=live.live_score, elapsed=live.elapsed)
        if not self.store.update_live(progress):
            return False
        self.publisher.update(progress, format_match_live(progress, self.publisher.tz_name))
        return True

    # -- accuracy -----------------------------------------------------------

    def send_accuracy_summary(self, days: int, label: Optional[str] = None) -> AccuracyReport:
        report = accuracy_for_period(self.store, days, self._now())
        self.publisher.send_text(format_accuracy_message(report, label or period_label(days)))
        return report

    def send_daily_accuracy(self) -> AccuracyReport:
        return self.send_accuracy_summary(1, "24 hours")

    def send_weekly_accuracy(self) -> AccuracyReport:
        return self.send_accuracy_summary(7, "week")

    def send_monthly_accuracy(self) -> AccuracyReport:
        return self.send_accuracy_summary(days_in_previous_month(_utc_today(self._now())), "month")

    def send_yearly_accuracy(self) -> AccuracyReport:
        return self.send_accuracy_summary(days_in_previous_year(_utc_today(self._now())), "year")


__all__ = ["MatchPipeline"]
