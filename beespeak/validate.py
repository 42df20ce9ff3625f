"""
API key validation with latency measurement.

Used once at startup to decide whether speech capture is authorized. The
same request lists the models the key can use, so a mistyped
`transcription_model` is caught before the first utterance.
"""

import time
from dataclasses import dataclass, field
from typing import List, Optional

import requests


GROQ_MODELS_URL = "https://api.groq.com/openai/v1/models"


@dataclass
class ValidationResult:
    """Result of an API key validation test."""
    valid: bool
    latency_ms: Optional[int] = None
    error: Optional[str] = None
    models: List[str] = field(default_factory=list)


# Shared session for connection reuse
_session = requests.Session()


def _model_ids(response: requests.Response) -> List[str]:
    try:
        return [m["id"] for m in response.json().get("data", [])]
    except (ValueError, AttributeError, KeyError, TypeError):
        return []


def validate_groq_key(api_key: str, model: Optional[str] = None) -> ValidationResult:
    """
    Validate a Groq API key and, optionally, that it can use `model`.

    An unreadable model list is not held against the key.
    """
    if not api_key or len(api_key) < 10:
        return ValidationResult(valid=False, error="Key too short")

    try:
        start = time.perf_counter()
        response = _session.get(
            GROQ_MODELS_URL,
            headers={"Authorization": f"Bearer {api_key}"},
            timeout=10,
        )
        latency = int((time.perf_counter() - start) * 1000)
    except requests.Timeout:
        return ValidationResult(valid=False, error="Timeout")
    except requests.RequestException as e:
        return ValidationResult(valid=False, error=str(e)[:50])

    if response.status_code == 401:
        return ValidationResult(valid=False, error="Invalid key")
    if response.status_code != 200:
        return ValidationResult(valid=False, error=f"HTTP {response.status_code}")

    models = _model_ids(response)
    if model and models and model not in models:
        return ValidationResult(valid=False, latency_ms=latency, error=f"Unknown model: {model}", models=models)
    return ValidationResult(valid=True, latency_ms=latency, models=models)
