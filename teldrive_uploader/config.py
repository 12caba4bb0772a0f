import os
from typing import Optional

from dotenv import load_dotenv

from .sizes import parse_size

DEFAULT_ENV_FILE = "upload.env"
SESSION_COOKIE = "user-session"
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")

_DEFAULTS = {
    "PART_SIZE": "1GB",
    "WORKERS": 4,
    "PACER_MIN_SLEEP": 0.4,
    "PACER_MAX_SLEEP": 5.0,
    "HTTP_TIMEOUT": 300.0,
}


class Config:
    """Process-wide settings, read once from the environment.

    ``upload.env`` is loaded first through python-dotenv; variables already
    present in the environment take precedence. Missing required values raise
    ``KeyError``, malformed ones ``ValueError``.
    """

    def __init__(self, env_file: Optional[str] = DEFAULT_ENV_FILE) -> None:
        if env_file:
            load_dotenv(env_file)

        self.api_url: str = os.environ["API_URL"].strip().rstrip("/")
        self.session_token: str = os.environ["SESSION_TOKEN"].strip()
        if not self.api_url:
            raise ValueError("API_URL is empty.")
        if not self.session_token:
            raise ValueError("SESSION_TOKEN is empty.")

        self.part_size: int = parse_size(os.getenv("PART_SIZE") or _DEFAULTS["PART_SIZE"])
        self.workers: int = _int_env("WORKERS", _DEFAULTS["WORKERS"])
        self.channel_id: Optional[int] = (
            _int_env("CHANNEL_ID", 0) if os.getenv("CHANNEL_ID") else None
        )
        self.log_path: Optional[str] = os.getenv("LOG_PATH")
        self.log_level: str = (os.getenv("LOG_LEVEL") or "INFO").strip().upper()
        self.pacer_min_sleep: float = _float_env("PACER_MIN_SLEEP", _DEFAULTS["PACER_MIN_SLEEP"])
        self.pacer_max_sleep: float = _float_env("PACER_MAX_SLEEP", _DEFAULTS["PACER_MAX_SLEEP"])
        self.http_timeout: float = _float_env("HTTP_TIMEOUT", _DEFAULTS["HTTP_TIMEOUT"])

        if self.part_size <= 0:
            raise ValueError(f"PART_SIZE must be positive. Got {self.part_size} bytes.")
        if self.workers < 1:
            raise ValueError(f"WORKERS must be at least 1. Got {self.workers}.")
        if self.pacer_min_sleep <= 0:
            raise ValueError("PACER_MIN_SLEEP must be positive.")
        if self.pacer_max_sleep < self.pacer_min_sleep:
            raise ValueError("PACER_MAX_SLEEP must not be smaller than PACER_MIN_SLEEP.")
        if self.http_timeout <= 0:
            raise ValueError("HTTP_TIMEOUT must be positive.")
        if self.log_level not in _LOG_LEVELS:
            raise ValueError(
                f"LOG_LEVEL must be one of {', '.join(_LOG_LEVELS)}. Got {self.log_level!r}."
            )


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer. Got {raw!r}.")


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number. Got {raw!r}.")
