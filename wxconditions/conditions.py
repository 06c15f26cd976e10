from __future__ import annotations

import json
import math
import threading
import weakref
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Any, Optional, Protocol
from urllib.parse import quote

from .config import WUNDERGROUND_API_KEY_NAME, settings
from .connection import ConnectionManager, HTTPResponse
from .errors import (
    ConditionsFetchFailed,
    ConditionsParseError,
    CredentialUnavailableError,
    QueueUnavailableError,
)
from .keys import KeyManager, key_manager as shared_key_manager
from .log import VerbosityLevel, get_logger, mask_key, verbosity_logger

logger = get_logger(__name__)

REQUEST_HEADERS = {"Accept": "application/json"}

# Characters allowed unescaped in a URL path segment.
_PATH_SAFE = "/:@!$&'()*+,;="

_NUMERIC_FIELDS = ("temp_f", "temp_c")
_STRING_FIELDS = ("weather", "icon", "local_tz_short", "local_tz_offset")


@dataclass(frozen=True)
class ConditionsResult:
    """Current observation for one location.

    `local_tz_offset` stays a string ("-0500"); the provider's format is not a
    canonical numeric offset.
    """

    temp_c: float
    temp_f: float
    weather: str
    icon: str
    local_tz_short: str
    local_tz_offset: str


class ConditionsListener(Protocol):
    def conditions_complete(
        self,
        fetcher: "ConditionsFetcher",
        temp_c: float,
        temp_f: float,
        weather: str,
        icon: str,
        local_tz_short: str,
        local_tz_offset: str,
    ) -> None: ...

    def conditions_failed(self, fetcher: "ConditionsFetcher", response: Optional[HTTPResponse]) -> None: ...


def build_conditions_url(
    secret: str, latitude: float, longitude: float, host: Optional[str] = None
) -> str:
    """Return the percent-encoded conditions URL for a coordinate pair."""
    if not secret:
        raise ValueError("API key is empty.")
    if not (math.isfinite(latitude) and math.isfinite(longitude)):
        raise ValueError(f"Coordinates must be finite, got {latitude}, {longitude}.")

    path = f"/api/{secret}/conditions/q/{latitude},{longitude}.json"
    return f"https://{host or settings.wunderground_host}{quote(path, safe=_PATH_SAFE)}"


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def parse_conditions(data: Optional[bytes | str]) -> ConditionsResult:
    """Parse a conditions payload, all six fields or nothing."""
    if data is None:
        raise ConditionsParseError("No data received.")
    try:
        payload = json.loads(data)
    except (TypeError, ValueError, RecursionError) as exc:
        raise ConditionsParseError(f"Payload is not valid JSON: {exc}") from exc

    if not isinstance(payload, dict):
        raise ConditionsParseError("Payload root is not an object.")
    observation = payload.get("current_observation")
    if not isinstance(observation, dict):
        raise ConditionsParseError("Missing current_observation object.")

    temperatures = {}
    for name in _NUMERIC_FIELDS:
        value = observation.get(name)
        if not _is_number(value):
            raise ConditionsParseError(f"Field {name!r} is missing or not a number.")
        try:
            temperatures[name] = float(value)
        except OverflowError as exc:
            raise ConditionsParseError(f"Field {name!r} is out of range.") from exc
        if not math.isfinite(temperatures[name]):
            raise ConditionsParseError(f"Field {name!r} is not finite.")
    for name in _STRING_FIELDS:
        if not isinstance(observation.get(name), str):
            raise ConditionsParseError(f"Field {name!r} is missing or not a string.")

    return ConditionsResult(
        temp_c=temperatures["temp_c"],
        temp_f=temperatures["temp_f"],
        weather=observation["weather"],
        icon=observation["icon"],
        local_tz_short=observation["local_tz_short"],
        local_tz_offset=observation["local_tz_offset"],
    )


class ConditionsFetcher:
    """One call to the Wunderground conditions API.

    Construction checks that `api_key` is registered with the key manager and
    queues the request on that key's serial queue; it raises
    `CredentialUnavailableError` or `QueueUnavailableError` otherwise, before
    any network activity. The outcome is written once: the listener gets
    exactly one of `conditions_complete` / `conditions_failed`, and `future`
    resolves to a `ConditionsResult` or fails with `ConditionsFetchFailed`.

    The listener is held by weak reference. Keep it alive until the outcome
    arrives. Callbacks run on a worker thread, not the constructing one.
    """

    def __init__(
        self,
        latitude: float,
        longitude: float,
        listener: Optional[ConditionsListener] = None,
        api_key: str = WUNDERGROUND_API_KEY_NAME,
        verbosity: VerbosityLevel = VerbosityLevel.OFF,
        *,
        key_manager: Optional[KeyManager] = None,
        connection_manager: Optional[ConnectionManager] = None,
        host: Optional[str] = None,
    ):
        self._latitude = float(latitude)
        self._longitude = float(longitude)
        self._listener = weakref.ref(listener) if listener is not None else None
        self._api_key = api_key
        self._verbosity = verbosity
        self._log = verbosity_logger(__name__, verbosity)
        self._keys = key_manager if key_manager is not None else shared_key_manager
        self._host = host
        self._response: Optional[HTTPResponse] = None
        self._finished = False
        self._finish_lock = threading.Lock()
        self.future: Future = Future()

        if not self._keys.key_available(api_key):
            raise CredentialUnavailableError(api_key)
        queue = self._keys.acquire(api_key)
        if queue is None:
            # Key vanished between the check and the lookup.
            raise QueueUnavailableError(api_key)

        self.connection_manager = connection_manager or ConnectionManager(verbosity=verbosity)
        self.connection_manager.delegate = self
        self.connection_manager.verbosity = verbosity

        self.queued: Future = queue.submit(self._dispatch)

    @property
    def latitude(self) -> float:
        return self._latitude

    @property
    def longitude(self) -> float:
        return self._longitude

    @property
    def api_key(self) -> str:
        return self._api_key

    @property
    def verbosity(self) -> VerbosityLevel:
        return self._verbosity

    @property
    def response(self) -> Optional[HTTPResponse]:
        """Last response received from the server, if any."""
        return self._response

    @property
    def done(self) -> bool:
        return self._finished

    def _dispatch(self) -> None:
        secret = self._keys.key(self._api_key)
        if secret is None:
            self._fail(f"API key {self._api_key!r} was revoked before dispatch.")
            return
        try:
            url = build_conditions_url(secret, self._latitude, self._longitude, self._host)
        except ValueError as exc:
            self._fail(str(exc))
            return

        self._log.info("Requesting %s", mask_key(url, quote(secret, safe=_PATH_SAFE)))
        try:
            started = self.connection_manager.get_message(
                url, headers=dict(REQUEST_HEADERS), begin_immediately=True, session_id=None
            )
        except Exception as exc:
            logger.exception("Connection raised while starting")
            self._fail(f"Connection raised {type(exc).__name__} while starting.")
            return
        if not started:
            self._fail("Connection could not be started.")

    # Connection manager callbacks

    def response_received(self, connection_manager: ConnectionManager, response: HTTPResponse) -> None:
        self._response = response

    def upload_in_progress(self, connection_manager: ConnectionManager) -> None:
        pass

    def download_in_progress(self, connection_manager: ConnectionManager) -> None:
        pass

    def operation_failed(self, connection_manager: ConnectionManager) -> None:
        self._fail("Connection failed.")

    def operation_complete(self, connection_manager: ConnectionManager) -> None:
        try:
            result = parse_conditions(connection_manager.received_data)
        except ConditionsParseError as exc:
            self._log.error("%s", exc)
            self._fail(str(exc))
            return
        except Exception as exc:
            logger.exception("Unexpected error while parsing conditions")
            self._fail(f"Parsing raised {type(exc).__name__}.")
            return
        self._succeed(result)

    # Terminal outcome

    def _claim(self) -> bool:
        with self._finish_lock:
            if self._finished:
                return False
            self._finished = True
            return True

    def _succeed(self, result: ConditionsResult) -> None:
        if not self._claim():
            self._log.debug("Ignoring late success, outcome already delivered")
            return
        listener = self._live_listener()
        if listener is not None:
            self._call_listener(
                listener.conditions_complete,
                result.temp_c,
                result.temp_f,
                result.weather,
                result.icon,
                result.local_tz_short,
                result.local_tz_offset,
            )
        self.future.set_result(result)

    def _fail(self, reason: str) -> None:
        if not self._claim():
            self._log.debug("Ignoring late failure (%s), outcome already delivered", reason)
            return
        response = self._response
        self._log.info("Conditions fetch failed: %s", reason)
        listener = self._live_listener()
        if listener is not None:
            self._call_listener(listener.conditions_failed, response)
        self.future.set_exception(ConditionsFetchFailed(response, reason))

    def _live_listener(self) -> Optional[ConditionsListener]:
        if self._listener is None:
            return None
        listener = self._listener()
        if listener is None:
            self._log.warning("Listener was released before the outcome arrived")
        return listener

    def _call_listener(self, method: Any, *args: Any) -> None:
        try:
            method(self, *args)
        except Exception:
            logger.exception("Listener raised")


def fetch_conditions(
    latitude: float,
    longitude: float,
    api_key: str = WUNDERGROUND_API_KEY_NAME,
    timeout: Optional[float] = None,
    verbosity: VerbosityLevel = VerbosityLevel.OFF,
    key_manager: Optional[KeyManager] = None,
) -> ConditionsResult:
    """Blocking helper: run one fetch and return its result.

    Raises `ConditionsFetchFailed` on any failure after construction.
    """
    fetcher = ConditionsFetcher(
        latitude, longitude, None, api_key, verbosity, key_manager=key_manager
    )
    return fetcher.future.result(timeout=timeout)
