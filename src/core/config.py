import json
import os
from dataclasses import dataclass, field
from datetime import date
from functools import lru_cache
from pathlib import Path
from typing import Optional, List

from dotenv import find_dotenv, load_dotenv


# Leghe di default se non configurate via env/file (stagione corrente)
DEFAULT_LEAGUE_IDS = [
    39,   # England Premier League
    140,  # Spain La Liga
    135,  # Italy Serie A
    78,   # Germany Bundesliga
    61,   # France Ligue 1
    2,    # UEFA Champions League
]

# mese di inizio delle stagioni europee su API-Football
SEASON_START_MONTH = 7


def current_season(today: Optional[date] = None) -> int:
    """Anno di inizio della stagione in corso (luglio-giugno)."""
    today = today or date.today()
    return today.year if today.month >= SEASON_START_MONTH else today.year - 1


def _parse_bool(value: Optional[str], default: bool) -> bool:
    if value is None or value == "":
        return default
    v = value.strip().lower()
    if v in {"0", "false", "no"}:
        return False
    return True


def _parse_list(value: Optional[str]) -> Optional[List[str]]:
    if not value:
        return None
    parts = [p.strip() for p in value.split(",")]
    clean = [p for p in parts if p]
    return clean or None


@dataclass(frozen=True)
class LeagueConfig:
    league_id: int
    season: int


def _parse_leagues(raw: Optional[str]) -> List[LeagueConfig]:
    """
    Formato: "39:2025,140:2025".
    Token malformati sollevano ValueError (config sbagliata = errore esplicito).
    """
    out: List[LeagueConfig] = []
    for token in _parse_list(raw) or []:
        league, sep, season = token.partition(":")
        if not sep:
            raise ValueError(f"FOOTBALL_LEAGUES: token {token!r} non nel formato league_id:season")
        try:
            out.append(LeagueConfig(int(league), int(season)))
        except ValueError as e:
            raise ValueError(f"FOOTBALL_LEAGUES: token {token!r} non numerico") from e
    return out


def _load_leagues_file(path: str) -> List[LeagueConfig]:
    """Legge un file JSON [{"leagueId": 39, "season": 2025}, ...]."""
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise ValueError(f"FOOTBALL_LEAGUES_FILE non leggibile ({path}): {e}") from e
    if not isinstance(raw, list):
        raise ValueError(f"FOOTBALL_LEAGUES_FILE deve contenere una lista ({path})")
    out: List[LeagueConfig] = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        league = item.get("leagueId", item.get("league_id"))
        season = item.get("season")
        if league is None or season is None:
            continue
        out.append(LeagueConfig(int(league), int(season)))
    return out


@dataclass
class Settings:
    api_football_key: str
    api_football_base_url: str
    api_football_rapidapi: bool
    log_level: str

    api_football_max_attempts: int
    api_football_backoff_base: float
    api_football_backoff_factor: float
    api_football_backoff_jitter: float
    api_football_timeout: float
    api_football_rate_per_minute: int

    telegram_bot_token: Optional[str]
    admin_chat_id: Optional[str]
    channel_chat_id: Optional[str]
    telegram_rate_per_minute: int
    telegram_poll_timeout: int

    openai_api_key: Optional[str]
    openai_model: str
    openai_max_tokens: int
    openai_temperature: float
    openai_timeout: float
    openai_rate_per_minute: int

    prediction_max_attempts: int
    prediction_backoff_base: float
    prediction_backoff_factor: float

    bot_db_path: str
    bot_timezone: str
    leagues: List[LeagueConfig] = field(default_factory=list)

    upcoming_window_hours: int = 24
    publish_window_hours: int = 12
    live_poll_minutes: int = 10
    top_match_min_odds: float = 1.5
    top_match_max_odds: float = 2.5

    enable_prometheus_exporter: bool = False
    prometheus_port: int = 9100

    @classmethod
    def from_env(cls) -> "Settings":
        dotenv_path = find_dotenv(usecwd=True)
        if dotenv_path:
            load_dotenv(dotenv_path, override=False)

        key = os.getenv("API_FOOTBALL_KEY")
        if not key:
            raise ValueError("API_FOOTBALL_KEY non impostata. Aggiungi a .env: API_FOOTBALL_KEY=LA_TUA_CHIAVE")

        def _int(name: str, default: int) -> int:
            raw = os.getenv(name)
            if not raw:
                return default
            try:
                return int(raw)
            except ValueError as e:
                raise ValueError(f"Variabile {name} deve essere un intero (valore: {raw!r})") from e

        def _float(name: str, default: float) -> float:
            raw = os.getenv(name)
            if not raw:
                return default
            try:
                return float(raw)
            except ValueError as e:
                raise ValueError(f"Variabile {name} deve essere un numero (valore: {raw!r})") from e

        def _opt_str(name: str) -> Optional[str]:
            raw = os.getenv(name)
            if raw is None:
                return None
            raw = raw.strip()
            return raw or None

        rapidapi = _parse_bool(os.getenv("API_FOOTBALL_RAPIDAPI"), False)
        default_base = (
            "https://api-football-v1.p.rapidapi.com/v3" if rapidapi else "https://v3.football.api-sports.io"
        )
        base_url = os.getenv("API_FOOTBALL_BASE_URL", default_base).rstrip("/")

        leagues_file = _opt_str("FOOTBALL_LEAGUES_FILE")
        if leagues_file:
            leagues = _load_leagues_file(leagues_file)
        else:
            leagues = _parse_leagues(os.getenv("FOOTBALL_LEAGUES"))
        if not leagues:
            season = current_season()
            leagues = [LeagueConfig(lid, season) for lid in DEFAULT_LEAGUE_IDS]

        prediction_max_attempts = _int("PREDICTION_MAX_ATTEMPTS", 3)
        if prediction_max_attempts < 1:
            prediction_max_attempts = 1

        live_poll_minutes = _int("LIVE_POLL_MINUTES", 10)
        if live_poll_minutes < 1:
            live_poll_minutes = 10

        return cls(
            api_football_key=key,
            api_football_base_url=base_url,
            api_football_rapidapi=rapidapi,
            log_level=os.getenv("BOT_LOG_LEVEL", "INFO").upper(),
            api_football_max_attempts=_int("API_FOOTBALL_MAX_ATTEMPTS", 5),
            api_football_backoff_base=_float("API_FOOTBALL_BACKOFF_BASE", 0.5),
            api_football_backoff_factor=_float("API_FOOTBALL_BACKOFF_FACTOR", 2.0),
            api_football_backoff_jitter=_float("API_FOOTBALL_BACKOFF_JITTER", 0.2),
            api_football_timeout=_float("API_FOOTBALL_TIMEOUT", 10.0),
            api_football_rate_per_minute=_int("API_FOOTBALL_RATE_PER_MINUTE", 10),
            telegram_bot_token=_opt_str("TELEGRAM_BOT_TOKEN"),
            admin_chat_id=_opt_str("ADMIN_CHAT_ID"),
            channel_chat_id=_opt_str("CHANNEL_CHAT_ID"),
            telegram_rate_per_minute=_int("TELEGRAM_RATE_PER_MINUTE", 20),
            telegram_poll_timeout=_int("TELEGRAM_POLL_TIMEOUT", 30),
            openai_api_key=_opt_str("OPENAI_API_KEY"),
            openai_model=os.getenv("OPENAI_MODEL", "gpt-4o"),
            openai_max_tokens=_int("OPENAI_MAX_TOKENS", 1000),
            openai_temperature=_float("OPENAI_TEMPERATURE", 1.0),
            openai_timeout=_float("OPENAI_TIMEOUT", 180.0),
            openai_rate_per_minute=_int("OPENAI_RATE_PER_MINUTE", 30),
            prediction_max_attempts=prediction_max_attempts,
            prediction_backoff_base=_float("PREDICTION_BACKOFF_BASE", 1.0),
            prediction_backoff_factor=_float("PREDICTION_BACKOFF_FACTOR", 2.0),
            bot_db_path=os.getenv("BOT_DB_PATH", "data/predictions.db"),
            bot_timezone=os.getenv("BOT_TIMEZONE", "UTC"),
            leagues=leagues,
            upcoming_window_hours=_int("UPCOMING_WINDOW_HOURS", 24),
            publish_window_hours=_int("PUBLISH_WINDOW_HOURS", 12),
            live_poll_minutes=live_poll_minutes,
            top_match_min_odds=_float("TOP_MATCH_MIN_ODDS", 1.5),
            top_match_max_odds=_float("TOP_MATCH_MAX_ODDS", 2.5),
            enable_prometheus_exporter=_parse_bool(os.getenv("ENABLE_PROMETHEUS_EXPORTER"), False),
            prometheus_port=_int("PROMETHEUS_PORT", 9100),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()


def _reset_settings_cache_for_tests() -> None:
    get_settings.cache_clear()


__all__ = ["Settings", "LeagueConfig", "current_season", "get_settings", "_reset_settings_cache_for_tests"]
