from __future__ import annotations

import threading
from typing import List, Optional, Tuple

from core.config import Settings
from core.logging import get_logger
from core.retry import RetryCancelled
from .client import TelegramAPIError, TelegramClient
from .commands import ADMIN_COMMANDS, PUBLIC_COMMANDS, CommandDispatcher

logger = get_logger("telegram_bot.bot")

BOT_COMMANDS: List[Tuple[str, str]] = PUBLIC_COMMANDS + ADMIN_COMMANDS

_ERROR_PAUSE_SECONDS = 5.0


class BotRunner:
    """
    Long polling su getUpdates con offset.
    Un update che fa fallire l'handler viene loggato e scartato.
    """

    def __init__(
        self,
        client: TelegramClient,
        dispatcher: CommandDispatcher,
        settings: Settings,
        stop_event: Optional[threading.Event] = None,
    ) -> None:
        self._client = client
        self._dispatcher = dispatcher
        self._settings = settings
        self.stop_event = stop_event or threading.Event()
        self.offset: Optional[int] = None

    def register_commands(self) -> None:
        # Telegram accetta solo comandi minuscoli
        commands = [(c.lower(), d) for c, d in BOT_COMMANDS]
        try:
            self._client.set_my_commands(commands)
            logger.info("Comandi registrati: %s", len(commands))
        except TelegramAPIError as exc:
            logger.warning("Registrazione comandi fallita: %s", exc.description)

    def announce_start(self) -> None:
        admin = self._settings.admin_chat_id
        if not admin:
            logger.debug("ADMIN_CHAT_ID assente, nessun annuncio di avvio")
            return
        try:
            self._client.send_message(admin, "Bot has been started")
        except TelegramAPIError as exc:
            logger.warning("Annuncio avvio fallito: %s", exc.description, extra={"chat_id": admin})

    def poll_once(self, timeout: Optional[int] = None) -> int:
        """Scarica un batch di update e li gestisce. Ritorna il numero di update."""
        poll_timeout = self._settings.telegram_poll_timeout if timeout is None else timeout
        updates = self._client.get_updates(offset=self.offset, timeout=poll_timeout)
        for update in updates:
            update_id = update.get("update_id")
            if isinstance(update_id, int):
                self.offset = update_id + 1
            try:
                self._dispatcher.handle_update(update)
            except Exception:
                logger.exception("Errore gestione update %s", update_id)
        return len(updates)

    def run(self) -> None:
        self.register_commands()
        self.announce_start()
        logger.info("Polling avviato")
        while not self.stop_event.is_set():
            try:
                self.poll_once()
            except RetryCancelled:
                break
            except TelegramAPIError as exc:
                logger.error("getUpdates fallito: %s", exc.description)
                self.stop_event.wait(_ERROR_PAUSE_SECONDS)
        logger.info("Polling terminato")


__all__ = ["BotRunner", "BOT_COMMANDS"]
