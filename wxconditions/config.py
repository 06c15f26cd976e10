from __future__ import annotations

import os
from dotenv import load_dotenv
from dataclasses import dataclass


# Name the Wunderground secret is registered under in the key manager.
WUNDERGROUND_API_KEY_NAME = "WundergroundAPIKey"

DEFAULT_HOST = "api.wunderground.com"
DEFAULT_TIMEOUT = 10.0


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass
class Settings:
    """Application configuration loaded from environment variables."""

    wunderground_api_key: str | None
    wunderground_host: str
    request_timeout: float
    log_level: str

    @classmethod
    def load(cls) -> "Settings":
        # Load .env file if present (no-op if not)
        try:
            load_dotenv()
        except Exception:
            # If the .env file can't be read, continue using os.environ
            pass

        return cls(
            wunderground_api_key=os.getenv("WUNDERGROUND_API_KEY"),
            wunderground_host=os.getenv("WUNDERGROUND_HOST", DEFAULT_HOST),
            request_timeout=_float_env("WUNDERGROUND_TIMEOUT", DEFAULT_TIMEOUT),
            log_level=os.getenv("WXCONDITIONS_LOG_LEVEL", "WARNING").upper(),
        )


settings = Settings.load()
