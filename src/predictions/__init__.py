"""
Predictions package.

Contiene:
- prompt: template della richiesta al modello
- parser: regex sul formato di risposta a parentesi quadre
- llm_client: wrapper OpenAI chat completions
- pipeline: PredictionService (retry + salvataggio / purge)
"""
from .parser import ParsedPrediction, PredictionParseError, parse_prediction, parse_predictions  # noqa: F401
from .pipeline import PredictionService  # noqa: F401


__all__ = [
    "ParsedPrediction",
    "PredictionParseError",
    "PredictionService",
    "parse_prediction",
    "parse_predictions",
]
