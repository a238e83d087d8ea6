from __future__ import annotations

from typing import Optional

from core.logging import get_logger
from core.models import MatchRecord
from core.persistence import MatchStore
from monitoring.prometheus_exporter import TELEGRAM_MESSAGES_TOTAL
from .client import TelegramAPIError, TelegramClient
from .formatting import format_match

logger = get_logger("telegram_bot.publisher")

NOT_MODIFIED_MARKER = "message is not modified"


def is_not_modified(error: TelegramAPIError) -> bool:
    """Telegram risponde 400 'message is not modified' se il testo è identico."""
    return NOT_MODIFIED_MARKER in (error.description or "").lower()


class ChannelPublisher:
    """Invia / modifica i messaggi delle fixture nel canale e salva il message id."""

    def __init__(
        self,
        client: TelegramClient,
        store: MatchStore,
        channel_chat_id: str,
        *,
        tz_name: str = "UTC",
    ) -> None:
        if not channel_chat_id:
            raise ValueError("CHANNEL_CHAT_ID non impostato")
        self._client = client
        self._store = store
        self._channel = channel_chat_id
        self.tz_name = tz_name

    def publish(self, record: MatchRecord) -> Optional[int]:
        if record.is_published:
            return record.telegram_message_id
        text = format_match(record, self.tz_name)
        try:
            message_id = self._client.send_message(self._channel, text, disable_notification=True)
        except TelegramAPIError as exc:
            TELEGRAM_MESSAGES_TOTAL.labels(action="failed").inc()
            logger.error(
                "Invio messaggio fallito per %s: %s",
                record.teams,
                exc.description,
                extra={"fixture_id": record.fixture_id},
            )
            return None
        TELEGRAM_MESSAGES_TOTAL.labels(action="sent").inc()
        self._store.set_message_id(record, message_id)
        return message_id

    def update(self, record: MatchRecord, text: str) -> bool:
        message_id = record.telegram_message_id
        if message_id is None:
            logger.error("Messaggio non aggiornato: message id assente per %s", record.teams)
            return False
        try:
            self._client.edit_message_text(self._channel, message_id, text)
        except TelegramAPIError as exc:
            if is_not_modified(exc):
                TELEGRAM_MESSAGES_TOTAL.labels(action="unchanged").inc()
                logger.info(
                    "Nessun aggiornamento necessario, contenuto già attuale",
                    extra={"message_id": message_id},
                )
                return True
            TELEGRAM_MESSAGES_TOTAL.labels(action="failed").inc()
            logger.error(
                "Aggiornamento messaggio fallito: %s",
                exc.description,
                extra={"message_id": message_id},
            )
            return False
        TELEGRAM_MESSAGES_TOTAL.labels(action="edited").inc()
        logger.info("Messaggio aggiornato", extra={"message_id": message_id})
        return True

    def send_text(self, text: str) -> Optional[int]:
        try:
            message_id = self._client.send_message(self._channel, text, disable_notification=True)
        except TelegramAPIError as exc:
            TELEGRAM_MESSAGES_TOTAL.labels(action="failed").inc()
            logger.error("Invio messaggio al canale fallito: %s", exc.description)
            return None
        TELEGRAM_MESSAGES_TOTAL.labels(action="sent").inc()
        return message_id


__all__ = ["ChannelPublisher", "is_not_modified", "NOT_MODIFIED_MARKER"]
