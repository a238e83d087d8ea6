from __future__ import annotations

import threading
import time
from typing import Callable, Optional

from core.logging import get_logger
from core.retry import RetryCancelled

logger = get_logger("core.rate_limit")


class TokenBucket:
    """
    Token bucket thread-safe condiviso tra le chiamate verso la stessa API.

    rate_per_minute token/minuto, capacità massima = capacity (default = rate).
    Il token viene prenotato sotto lock, l'attesa avviene fuori dal lock.
    Con stop_event settato l'attesa si interrompe con RetryCancelled.
    clock/sleep iniettabili per i test.
    """

    def __init__(
        self,
        rate_per_minute: float,
        capacity: Optional[float] = None,
        *,
        name: str = "bucket",
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        stop_event: Optional[threading.Event] = None,
    ) -> None:
        if rate_per_minute <= 0:
            raise ValueError("rate_per_minute deve essere > 0")
        self.name = name
        self.rate = float(rate_per_minute)
        self.capacity = float(capacity if capacity is not None else rate_per_minute)
        self._tokens = self.capacity
        self._clock = clock
        self._sleep = sleep
        self._stop_event = stop_event
        self._last_refill = clock()
        self._lock = threading.Lock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = now - self._last_refill
        if elapsed > 0:
            self._tokens = min(self.capacity, self._tokens + elapsed * (self.rate / 60.0))
        self._last_refill = now

    @property
    def available(self) -> float:
        with self._lock:
            self._refill()
            return self._tokens

    def try_acquire(self) -> bool:
        with self._lock:
            self._refill()
            if self._tokens >= 1:
                self._tokens -= 1
                return True
            return False

    def acquire(self) -> float:
        """Blocca finché il token prenotato è disponibile. Ritorna i secondi attesi."""
        with self._lock:
            self._refill()
            self._tokens -= 1
            wait = -self._tokens * (60.0 / self.rate) if self._tokens < 0 else 0.0
        if wait <= 0:
            return 0.0
        logger.debug("rate limit %s: attesa %.2fs", self.name, wait)
        if self._stop_event is not None:
            if self._stop_event.wait(wait):
                raise RetryCancelled(f"rate limit {self.name}: attesa interrotta")
        else:
            self._sleep(wait)
        return wait


__all__ = ["TokenBucket"]
