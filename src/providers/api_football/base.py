from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from core.models import MatchRecord


class FixturesProviderBase(ABC):
    """
    Interfaccia astratta per un provider di fixtures.

    Le pipeline dipendono solo da questa interfaccia: nei test viene
    sostituita da un provider finto.
    """

    @abstractmethod
    def fetch_fixtures(
        self,
        *,
        league_id: int,
        season: int,
        date_from: str,
        date_to: str,
    ) -> List[MatchRecord]:
        """
        Recupera le fixtures normalizzate di una lega.

        Parametri:
            league_id: ID della lega.
            season: stagione (anno intero, es: 2025).
            date_from / date_to: finestra YYYY-MM-DD inclusiva.
        """
        raise NotImplementedError

    @abstractmethod
    def fetch_finished_raw(
        self,
        *,
        league_id: int,
        season: int,
        date_from: str,
        date_to: str,
    ) -> List[Dict[str, Any]]:
        """Item grezzi dei match conclusi nella finestra."""
        raise NotImplementedError

    @abstractmethod
    def fetch_fixture_raw(self, fixture_id: int) -> Optional[Dict[str, Any]]:
        """Item grezzo di una singola fixture (stato live), None se assente."""
        raise NotImplementedError
