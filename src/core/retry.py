from __future__ import annotations

import random
import threading
from typing import Callable, Optional, TypeVar

from core.logging import get_logger

logger = get_logger("core.retry")

T = TypeVar("T")


class RetryCancelled(Exception):
    """Sollevata quando l'attesa tra due tentativi viene interrotta (shutdown)."""


class RetryPolicy:
    """
    Backoff esponenziale con jitter: delay = base * factor ** (attempt - 1).
    L'attesa usa uno threading.Event condiviso: se viene settato (stop del bot)
    l'attesa si interrompe con RetryCancelled.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base: float = 1.0,
        factor: float = 2.0,
        jitter: float = 0.0,
        stop_event: Optional[threading.Event] = None,
    ) -> None:
        self.max_attempts = max(1, int(max_attempts))
        self.base = base
        self.factor = factor
        self.jitter = jitter
        self.stop_event = stop_event or threading.Event()

    def compute_delay(self, attempt: int) -> float:
        # attempt parte da 1
        delay = self.base * (self.factor ** (attempt - 1))
        if self.jitter > 0:
            delay *= random.uniform(1 - self.jitter, 1 + self.jitter)
        return delay

    def wait(self, attempt: int, minimum: float = 0.0) -> float:
        delay = max(self.compute_delay(attempt), minimum)
        if self.stop_event.wait(delay):
            raise RetryCancelled(f"Retry interrotto durante l'attesa (attempt={attempt})")
        return delay

    def call(
        self,
        fn: Callable[[int], Optional[T]],
        *,
        label: str = "call",
    ) -> Optional[T]:
        """
        Esegue fn(attempt) fino a max_attempts volte.
        Un risultato None o un'eccezione contano come tentativo fallito.
        Ritorna il primo risultato non None, altrimenti None.
        """
        for attempt in range(1, self.max_attempts + 1):
            if self.stop_event.is_set():
                raise RetryCancelled(f"{label}: stop richiesto prima del tentativo {attempt}")
            try:
                result = fn(attempt)
            except RetryCancelled:
                raise
            except Exception as exc:
                logger.warning("%s tentativo %s fallito: %s", label, attempt, exc, extra={"attempt": attempt})
                result = None
            if result is not None:
                return result
            if attempt < self.max_attempts:
                self.wait(attempt)
        return None


__all__ = ["RetryPolicy", "RetryCancelled"]
