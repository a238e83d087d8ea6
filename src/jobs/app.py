from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Optional

from core.config import Settings, get_settings
from core.persistence import MatchStore
from core.rate_limit import TokenBucket
from core.retry import RetryPolicy
from predictions.llm_client import LLMClient
from predictions.pipeline import PredictionService
from providers.api_football.fixtures_provider import ApiFootballFixturesProvider
from providers.api_football.http_client import APIFootballHttpClient
from telegram_bot.client import TelegramClient
from telegram_bot.commands import CommandDispatcher
from telegram_bot.publisher import ChannelPublisher
from .pipeline import MatchPipeline


@dataclass
class BotApp:
    settings: Settings
    store: MatchStore
    telegram: TelegramClient
    publisher: ChannelPublisher
    predictions: PredictionService
    pipeline: MatchPipeline
    dispatcher: CommandDispatcher
    stop_event: threading.Event


def build_app(settings: Optional[Settings] = None, stop_event: Optional[threading.Event] = None) -> BotApp:
    """Collega store, client esterni (un bucket per API) e pipeline."""
    settings = settings or get_settings()
    stop_event = stop_event or threading.Event()
    if not settings.telegram_bot_token:
        raise ValueError("TELEGRAM_BOT_TOKEN non impostato")
    if not settings.channel_chat_id:
        raise ValueError("CHANNEL_CHAT_ID non impostato")

    store = MatchStore(settings.bot_db_path)

    telegram = TelegramClient(
        settings.telegram_bot_token,
        bucket=TokenBucket(settings.telegram_rate_per_minute, name="telegram", stop_event=stop_event),
    )
    publisher = ChannelPublisher(telegram, store, settings.channel_chat_id, tz_name=settings.bot_timezone)

    llm = LLMClient(settings, bucket=TokenBucket(settings.openai_rate_per_minute, name="openai", stop_event=stop_event))
    predictions = PredictionService(
        llm,
        RetryPolicy(
            max_attempts=settings.prediction_max_attempts,
            base=settings.prediction_backoff_base,
            factor=settings.prediction_backoff_factor,
            stop_event=stop_event,
        ),
    )

    http = APIFootballHttpClient(
        settings,
        bucket=TokenBucket(settings.api_football_rate_per_minute, name="api_football", stop_event=stop_event),
        stop_event=stop_event,
    )
    provider = ApiFootballFixturesProvider(http)

    pipeline = MatchPipeline(store, provider, predictions, publisher, settings)
    dispatcher = CommandDispatcher(telegram, store, predictions, publisher, settings)
    return BotApp(
        settings=settings,
        store=store,
        telegram=telegram,
        publisher=publisher,
        predictions=predictions,
        pipeline=pipeline,
        dispatcher=dispatcher,
        stop_event=stop_event,
    )


__all__ = ["BotApp", "build_app"]
