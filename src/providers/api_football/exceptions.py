class APIFootballError(Exception):
    """Errore generico del provider API-Football."""


class RateLimitError(APIFootballError):
    """Sollevata quando viene superato il rate limit (HTTP 429) dopo tutti i tentativi di retry."""


class TransientAPIError(APIFootballError):
    """Sollevata quando errori transitori (5xx / timeout / connessione) persistono oltre i tentativi massimi."""
