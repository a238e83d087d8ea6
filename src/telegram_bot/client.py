from __future__ import annotations

import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import requests

from core.logging import get_logger
from core.rate_limit import TokenBucket

logger = get_logger("telegram_bot.client")

_API_BASE = "https://api.telegram.org"
_MAX_RETRY_AFTER = 60.0


class TelegramAPIError(Exception):
    """Risposta ok=false della Bot API (o errore di rete)."""

    def __init__(
        self,
        description: str,
        error_code: Optional[int] = None,
        retry_after: Optional[float] = None,
    ) -> None:
        super().__init__(description)
        self.description = description
        self.error_code = error_code
        self.retry_after = retry_after


class TelegramClient:
    """
    Client Bot API sincrono basato su requests.

    Le chiamate in uscita (send/edit/document) consumano un token dal bucket
    condiviso; su 429 con retry_after viene fatto un solo nuovo tentativo.
    """

    def __init__(
        self,
        token: str,
        *,
        bucket: Optional[TokenBucket] = None,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if not token:
            raise ValueError("TELEGRAM_BOT_TOKEN non impostato")
        self._base_url = f"{_API_BASE}/bot{token}"
        self._bucket = bucket or TokenBucket(20, name="telegram")
        self._timeout = timeout
        self._session = session or requests.Session()
        self._sleep = sleep

    def _call(
        self,
        method: str,
        payload: Optional[Dict[str, Any]] = None,
        *,
        files: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
        limited: bool = True,
    ) -> Any:
        url = f"{self._base_url}/{method}"
        for attempt in (1, 2):
            if limited:
                self._bucket.acquire()
            try:
                if files:
                    resp = self._session.post(url, data=payload, files=files, timeout=timeout or self._timeout)
                else:
                    resp = self._session.post(url, json=payload or {}, timeout=timeout or self._timeout)
            except requests.RequestException as exc:
                raise TelegramAPIError(f"Errore di rete {method}: {exc}") from exc

            try:
                body = resp.json()
            except ValueError as exc:
                raise TelegramAPIError(
                    f"Risposta non JSON da {method} (status={resp.status_code})", resp.status_code
                ) from exc

            if body.get("ok"):
                return body.get("result")

            params = body.get("parameters") or {}
            err = TelegramAPIError(
                body.get("description") or "Errore sconosciuto",
                body.get("error_code"),
                params.get("retry_after"),
            )
            if err.error_code == 429 and err.retry_after and attempt == 1:
                wait = min(float(err.retry_after), _MAX_RETRY_AFTER)
                logger.warning("Telegram 429 su %s, retry tra %.0fs", method, wait, extra={"attempt": attempt})
                self._sleep(wait)
                continue
            raise err
        raise TelegramAPIError(f"Rate limit persistente su {method}", 429)

    # -- metodi Bot API -----------------------------------------------------

    def send_message(self, chat_id: str, text: str, *, disable_notification: bool = False) -> int:
        result = self._call(
            "sendMessage",
            {"chat_id": chat_id, "text": text, "disable_notification": disable_notification},
        )
        return int(result["message_id"])

    def edit_message_text(self, chat_id: str, message_id: int, text: str) -> None:
        self._call("editMessageText", {"chat_id": chat_id, "message_id": int(message_id), "text": text})

    def send_document(self, chat_id: str, path: Path, caption: Optional[str] = None) -> int:
        data: Dict[str, Any] = {"chat_id": chat_id}
        if caption:
            data["caption"] = caption
        with Path(path).open("rb") as fh:
            result = self._call("sendDocument", data, files={"document": (Path(path).name, fh)}, timeout=60)
        return int(result["message_id"])

    def set_my_commands(self, commands: Sequence[Tuple[str, str]]) -> None:
        payload = {"commands": [{"command": c.lstrip("/"), "description": d} for c, d in commands]}
        self._call("setMyCommands", payload, limited=False)

    def get_updates(self, offset: Optional[int] = None, timeout: int = 30) -> List[Dict[str, Any]]:
        payload: Dict[str, Any] = {"timeout": timeout, "allowed_updates": ["message"]}
        if offset is not None:
            payload["offset"] = offset
        result = self._call("getUpdates", payload, timeout=timeout + 10, limited=False)
        return [u for u in (result or []) if isinstance(u, dict)]


__all__ = ["TelegramClient", "TelegramAPIError"]
