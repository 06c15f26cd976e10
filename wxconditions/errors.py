from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .connection import HTTPResponse


class WeatherAPIError(Exception):
    """Raised when a weather API call cannot be made or fails."""


class CredentialUnavailableError(WeatherAPIError):
    """The named API key is not registered with the key manager."""

    def __init__(self, name: str):
        super().__init__(f"API key {name!r} is not available.")
        self.name = name


class QueueUnavailableError(WeatherAPIError):
    """The key manager could not produce a dispatch queue for a key."""

    def __init__(self, name: str):
        super().__init__(f"No dispatch queue for API key {name!r}.")
        self.name = name


class ConditionsParseError(WeatherAPIError):
    """The conditions payload is not the expected JSON shape."""


class ConditionsFetchFailed(WeatherAPIError):
    """Terminal failure of one conditions fetch."""

    def __init__(self, response: Optional["HTTPResponse"] = None, reason: str = ""):
        status = response.status_code if response is not None else None
        message = reason or "Conditions fetch failed"
        if status is not None:
            message = f"{message} (HTTP {status})"
        super().__init__(message)
        self.response = response
        self.reason = reason
