# app_config.py
"""
Central configuration for the Goal Guru app.

- UI_TEST_MODE: if True, the coach never calls a real LLM and returns canned replies.
- LLM_BASE_URL: base URL of the OpenAI-compatible chat server used by the coach.
- COACH_MODEL_NAME: model name sent with every coach request.
- DATA_DIR / STORE_FILENAME: where the local key-value stores live (one
  sub-directory per browser, keyed by the id kept in the browser's localStorage).
- AUTH_LATENCY: simulated delay (seconds) of the local auth backend.
- AUTH_TIMEOUT: optional timeout (seconds) for auth backend calls.
- SESSION_CONFLICT_POLICY: "queue" or "reject" for overlapping session operations.
"""

import logging
import os
import sys


def _bool_env(name: str, default: str = "false") -> bool:
    value = os.getenv(name, default).strip().lower()
    return value in {"1", "true", "yes", "y"}


def _float_env(name: str, default: float | None) -> float | None:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


# If True, do not call any real LLM and always return canned coach replies.
UI_TEST_MODE: bool = _bool_env("UI_TEST_MODE", "false")

# Base URL for your vLLM / OpenAI-compatible server
LLM_BASE_URL: str = os.getenv("LLM_BASE_URL", "http://127.0.0.1:8000").rstrip("/")

COACH_MODEL_NAME: str = os.getenv(
    "COACH_MODEL_NAME", "TinyLlama/TinyLlama-1.1B-Chat-v1.0"
)

# Optional API key
LLM_API_KEY: str | None = os.getenv("LLM_API_KEY", None)

# HTTP timeout for coach requests
LLM_TIMEOUT: float = _float_env("LLM_TIMEOUT", 60.0)

# Local durable store
DATA_DIR: str = os.getenv("DATA_DIR", "user_data")
STORE_FILENAME: str = os.getenv("STORE_FILENAME", "local_store.json")

# Auth backend (local trust model: any non-empty credential is accepted)
AUTH_LATENCY: float = _float_env("AUTH_LATENCY", 0.0)
AUTH_TIMEOUT: float | None = _float_env("AUTH_TIMEOUT", None)

SESSION_CONFLICT_POLICY: str = os.getenv("SESSION_CONFLICT_POLICY", "queue").strip().lower()

LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").strip().upper()


def store_path(client_dir: str) -> str:
    return os.path.join(client_dir, STORE_FILENAME)


def setup_logging(level: str | None = None) -> None:
    """Configure root logging for the app process."""
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stdout,
        level=getattr(logging, (level or LOG_LEVEL).upper(), logging.INFO),
    )
    # Gradio and its HTTP stack are chatty at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
