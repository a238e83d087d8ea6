from __future__ import annotations

from typing import Any, Dict, List, Optional

from core.logging import get_logger
from core.models import MatchRecord
from core.normalization import normalize_api_football_fixture
from .base import FixturesProviderBase
from .http_client import get_http_client, APIFootballHttpClient

log = get_logger(__name__)

_MAX_PAGES = 20


class ApiFootballFixturesProvider(FixturesProviderBase):
    """
    Provider API-Football normalizzato.
    - Usa APIFootballHttpClient (requests + retry + rate limit)
    - Segue la paginazione (paging.current / paging.total)
    - Normalizza i record in MatchRecord
    - Nessuna persistenza: la dedup è compito dello store
    """

    def __init__(self, client: Optional[APIFootballHttpClient] = None) -> None:
        self._client = client or get_http_client()

    def _get_all_pages(self, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        page = 1
        while True:
            query = dict(params)
            if page > 1:
                query["page"] = page
            raw = self._client.api_get("/fixtures", params=query)
            errors = raw.get("errors")
            if errors:
                log.warning("API-Football errors=%s params=%s", errors, query)
            response = raw.get("response", [])
            if not isinstance(response, list):
                log.warning("Formato inatteso: 'response' non è una lista")
                break
            items.extend(r for r in response if isinstance(r, dict))

            paging = raw.get("paging") or {}
            try:
                total_pages = int(paging.get("total") or 1)
            except (TypeError, ValueError):
                total_pages = 1
            if page >= total_pages or page >= _MAX_PAGES:
                break
            page += 1
        return items

    def fetch_raw(
        self,
        *,
        league_id: Optional[int] = None,
        season: Optional[int] = None,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
        status: Optional[str] = None,
        fixture_id: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {}
        if fixture_id is not None:
            params["id"] = fixture_id
        if league_id is not None:
            params["league"] = league_id
        if season is not None:
            params["season"] = season
        if date_from:
            params["from"] = date_from
        if date_to:
            params["to"] = date_to
        if status:
            params["status"] = status
        return self._get_all_pages(params)

    @staticmethod
    def _normalize(items: List[Dict[str, Any]]) -> List[MatchRecord]:
        out: List[MatchRecord] = []
        for item in items:
            rec = normalize_api_football_fixture(item)
            if rec is not None:
                out.append(rec)
        return out

    def fetch_fixtures(
        self,
        *,
        league_id: int,
        season: int,
        date_from: str,
        date_to: str,
    ) -> List[MatchRecord]:
        """Fixtures della lega nella finestra [date_from, date_to] (YYYY-MM-DD)."""
        items = self.fetch_raw(league_id=league_id, season=season, date_from=date_from, date_to=date_to)
        log.info("Fixtures ricevute: %s", len(items), extra={"league": league_id, "fetch_stats": self.get_last_stats()})
        return self._normalize(items)

    def fetch_finished_raw(
        self,
        *,
        league_id: int,
        season: int,
        date_from: str,
        date_to: str,
    ) -> List[Dict[str, Any]]:
        """Match conclusi (status=FT): ritorna gli item grezzi (servono i flag winner)."""
        return self.fetch_raw(
            league_id=league_id,
            season=season,
            date_from=date_from,
            date_to=date_to,
            status="FT",
        )

    def fetch_fixture_raw(self, fixture_id: int) -> Optional[Dict[str, Any]]:
        items = self.fetch_raw(fixture_id=fixture_id)
        if not items:
            log.warning("Nessun dato per fixture", extra={"fixture_id": fixture_id})
            return None
        return items[0]

    def get_last_stats(self) -> Dict[str, Any]:
        return self._client.get_stats()


__all__ = ["ApiFootballFixturesProvider"]
