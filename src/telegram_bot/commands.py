from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from core.accuracy import accuracy_for_period, format_accuracy_message, period_label
from core.config import Settings
from core.logging import get_logger
from core.persistence import MatchStore
from predictions.parser import ParsedPrediction, PredictionParseError
from predictions.pipeline import PredictionService
from .client import TelegramAPIError, TelegramClient
from .formatting import format_match, format_top_match
from .publisher import ChannelPublisher

logger = get_logger("telegram_bot.commands")

START_TEXT = (
    "Welcome to the Football Prediction Bot!\n"
    "\n"
    "No one can truly predict the future, but our Football Prediction Bot uses advanced analysis to "
    "estimate the outcomes of football matches. By leveraging in-depth analysis of team conditions, "
    "expert opinions, and bookmaker data, this bot provides insightful predictions.\n"
    "\n"
    "Please note that the predictions provided by this bot are for informational purposes only and are "
    "not recommendations for betting. Use the information at your own discretion and be aware of the "
    "regulations in your country regarding sports betting.\n"
    "\n"
    "To get a list of available commands, use /help."
)

PUBLIC_COMMANDS: List[Tuple[str, str]] = [
    ("/start", "Start the bot and get information about it"),
    ("/upcomingmatches", "Get upcoming matches within the next 24 hours"),
    ("/topmatch", "Get the top match based on odds"),
    ("/getAccuracy", "Get prediction accuracy for the last <days> days"),
    ("/help", "Get the list of available commands"),
]

ADMIN_COMMANDS: List[Tuple[str, str]] = [
    ("/getdatabase", "Get the database file"),
    ("/usercount", "Get the count of unique users"),
    ("/activeusercount", "Get the count of unique users active last day"),
    ("/newmatch", "Request a prediction for a match: /newmatch <text>"),
    ("/confirm", "Publish the pending match to the channel"),
    ("/reject", "Discard the pending match"),
]


@dataclass(frozen=True)
class IncomingMessage:
    chat_id: str
    text: str
    user_id: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    username: Optional[str] = None

    @classmethod
    def from_update(cls, update: Dict[str, Any]) -> Optional["IncomingMessage"]:
        message = update.get("message") or {}
        text = message.get("text")
        if not text:
            return None
        chat = message.get("chat") or {}
        sender = message.get("from") or {}
        if chat.get("id") is None:
            return None
        return cls(
            chat_id=str(chat["id"]),
            text=text,
            user_id=str(sender.get("id", chat["id"])),
            first_name=sender.get("first_name"),
            last_name=sender.get("last_name"),
            username=sender.get("username"),
        )


class PendingMatches:
    """Predizioni manuali in attesa di /confirm o /reject, per chat."""

    def __init__(self) -> None:
        self._items: Dict[str, ParsedPrediction] = {}
        self._lock = threading.Lock()

    def put(self, chat_id: str, prediction: ParsedPrediction) -> None:
        with self._lock:
            self._items[chat_id] = prediction

    def pop(self, chat_id: str) -> Optional[ParsedPrediction]:
        with self._lock:
            return self._items.pop(chat_id, None)

    def get(self, chat_id: str) -> Optional[ParsedPrediction]:
        with self._lock:
            return self._items.get(chat_id)


class CommandDispatcher:
    """
    Instrada i messaggi testuali verso gli handler dei comandi.
    Confronto per uguaglianza sul primo token (case-insensitive, suffisso @bot ignorato).
    I comandi admin sono accettati solo dalla chat ADMIN_CHAT_ID.
    """

    def __init__(
        self,
        client: TelegramClient,
        store: MatchStore,
        predictions: PredictionService,
        publisher: ChannelPublisher,
        settings: Settings,
        *,
        pending: Optional[PendingMatches] = None,
        now_fn: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._client = client
        self._store = store
        self._predictions = predictions
        self._publisher = publisher
        self._settings = settings
        self._pending = pending or PendingMatches()
        self._now = now_fn

        self._public: Dict[str, Callable[[IncomingMessage, str], None]] = {
            "/start": self._handle_start,
            "/help": self._handle_help,
            "/upcomingmatches": self._handle_upcoming,
            "/topmatch": self._handle_top_match,
            "/getaccuracy": self._handle_accuracy,
        }
        self._admin: Dict[str, Callable[[IncomingMessage, str], None]] = {
            "/getdatabase": self._handle_get_database,
            "/usercount": self._handle_user_count,
            "/activeusercount": self._handle_active_user_count,
            "/newmatch": self._handle_new_match,
            "/confirm": self._handle_confirm,
            "/reject": self._handle_reject,
        }

    @property
    def pending(self) -> PendingMatches:
        return self._pending

    def is_admin(self, chat_id: str) -> bool:
        return bool(self._settings.admin_chat_id) and chat_id == self._settings.admin_chat_id

    def reply(self, chat_id: str, text: str) -> None:
        try:
            self._client.send_message(chat_id, text)
        except TelegramAPIError as exc:
            logger.error("Invio risposta fallito: %s", exc.description, extra={"chat_id": chat_id})

    def handle_update(self, update: Dict[str, Any]) -> None:
        msg = IncomingMessage.from_update(update)
        if msg is not None:
            self.handle(msg)

    def handle(self, msg: IncomingMessage) -> None:
        self._store.touch_user(msg.user_id, msg.first_name, msg.last_name, msg.username, self._now())

        text = msg.text.strip()
        head, _, arg = text.partition(" ")
        command = head.split("@", 1)[0].lower()
        arg = arg.strip()

        if self.is_admin(msg.chat_id) and command in self._admin:
            logger.info("Comando admin", extra={"command": command, "chat_id": msg.chat_id})
            self._admin[command](msg, arg)
            return
        handler = self._public.get(command)
        if handler is not None:
            logger.info("Comando", extra={"command": command, "chat_id": msg.chat_id})
            handler(msg, arg)
            return
        self.reply(msg.chat_id, f"This is a response to: {text}")

    # -- comandi pubblici ---------------------------------------------------

    def _handle_start(self, msg: IncomingMessage, arg: str) -> None:
        self.reply(msg.chat_id, START_TEXT)

    def _handle_help(self, msg: IncomingMessage, arg: str) -> None:
        commands = list(PUBLIC_COMMANDS)
        if self.is_admin(msg.chat_id):
            commands += ADMIN_COMMANDS
        self.reply(msg.chat_id, "\n".join(f"{c} - {d}" for c, d in commands))

    def _handle_upcoming(self, msg: IncomingMessage, arg: str) -> None:
        hours = self._settings.upcoming_window_hours
        matches = self._store.upcoming(self._now(), hours)
        if not matches:
            self.reply(msg.chat_id, f"No upcoming matches within the next {hours} hours.")
            return
        for rec in matches:
            self.reply(msg.chat_id, format_match(rec, self._settings.bot_timezone))

    def _handle_top_match(self, msg: IncomingMessage, arg: str) -> None:
        low = self._settings.top_match_min_odds
        high = self._settings.top_match_max_odds
        candidates = [
            rec
            for rec in self._store.upcoming(self._now(), self._settings.upcoming_window_hours)
            if rec.odds_value is not None and low <= rec.odds_value <= high
        ]
        if not candidates:
            self.reply(msg.chat_id, "No top match found.")
            return
        top = max(candidates, key=lambda r: r.odds_value or 0.0)
        self.reply(msg.chat_id, format_top_match(top, self._settings.bot_timezone))

    def _handle_accuracy(self, msg: IncomingMessage, arg: str) -> None:
        try:
            days = int(arg)
        except ValueError:
            days = 0
        if days <= 0:
            self.reply(msg.chat_id, "Usage: /getAccuracy <days>, e.g. /getAccuracy 7")
            return
        report = accuracy_for_period(self._store, days, self._now())
        self.reply(msg.chat_id, format_accuracy_message(report, period_label(days)))

    # -- comandi admin ------------------------------------------------------

    def _handle_get_database(self, msg: IncomingMessage, arg: str) -> None:
        path = self._store.db_path
        if path is None or not path.exists():
            self.reply(msg.chat_id, "Database file not found.")
            return
        try:
            self._client.send_document(msg.chat_id, path, caption="Here is the database file.")
        except TelegramAPIError as exc:
            logger.error("Invio database fallito: %s", exc.description, extra={"chat_id": msg.chat_id})
            self.reply(msg.chat_id, "Failed to send the database file.")

    def _handle_user_count(self, msg: IncomingMessage, arg: str) -> None:
        self.reply(msg.chat_id, f"Number of unique users: {self._store.user_count()}")

    def _handle_active_user_count(self, msg: IncomingMessage, arg: str) -> None:
        since = self._now() - timedelta(days=1)
        self.reply(msg.chat_id, f"Number of unique users for last day: {self._store.active_user_count(since)}")

    def _handle_new_match(self, msg: IncomingMessage, arg: str) -> None:
        if not arg:
            self.reply(
                msg.chat_id,
                "Usage: /newmatch <match description>, e.g. /newmatch 2025-05-01 19:00 Spain La Liga Barcelona vs. Getafe",
            )
            return
        prediction = self._predictions.predict_manual(arg)
        if prediction is None:
            self.reply(msg.chat_id, "Failed to get a prediction for this match.")
            return
        if prediction.kickoff is None:
            self.reply(msg.chat_id, f"Prediction has an invalid match time: {prediction.start}")
            return
        self._pending.put(msg.chat_id, prediction)
        tz_name = self._settings.bot_timezone
        preview = format_match(prediction.to_record(tz_name), tz_name)
        self.reply(msg.chat_id, f"{preview}\n\nSend /confirm to publish or /reject to discard.")

    def _handle_confirm(self, msg: IncomingMessage, arg: str) -> None:
        prediction = self._pending.pop(msg.chat_id)
        if prediction is None:
            self.reply(msg.chat_id, "No pending match to confirm.")
            return
        try:
            record = prediction.to_record(self._settings.bot_timezone)
        except PredictionParseError as exc:
            self.reply(msg.chat_id, f"Cannot save this match: {exc}")
            return
        if self._store.exists(record):
            self.reply(msg.chat_id, "This match is already stored.")
            return
        saved = self._store.insert(record)
        if self._publisher.publish(saved) is not None:
            self.reply(msg.chat_id, "Match published to the channel.")
        else:
            self.reply(msg.chat_id, "Match saved, publishing failed: it will be retried.")

    def _handle_reject(self, msg: IncomingMessage, arg: str) -> None:
        if self._pending.pop(msg.chat_id) is None:
            self.reply(msg.chat_id, "No pending match to reject.")
            return
        self.reply(msg.chat_id, "Pending match discarded.")


__all__ = [
    "CommandDispatcher",
    "IncomingMessage",
    "PendingMatches",
    "PUBLIC_COMMANDS",
    "ADMIN_COMMANDS",
    "START_TEXT",
]
