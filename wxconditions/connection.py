from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Protocol, Tuple
from urllib.parse import urlsplit

import requests

from .config import settings
from .log import VerbosityLevel, get_logger, verbosity_logger

logger = get_logger(__name__)

DEFAULT_HEADERS = {"Accept": "application/json"}


@dataclass(frozen=True)
class HTTPResponse:
    """Status line and headers of a response, detached from the socket."""

    status_code: int
    reason: str = ""
    url: str = ""
    headers: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_requests(cls, response: requests.Response) -> "HTTPResponse":
        return cls(
            status_code=int(response.status_code),
            reason=response.reason or "",
            url=str(response.url or ""),
            headers=dict(response.headers or {}),
        )

    @property
    def ok(self) -> bool:
        return self.status_code < 400


class ConnectionManagerDelegate(Protocol):
    def response_received(self, connection_manager: "ConnectionManager", response: HTTPResponse) -> None: ...

    def upload_in_progress(self, connection_manager: "ConnectionManager") -> None: ...

    def download_in_progress(self, connection_manager: "ConnectionManager") -> None: ...

    def operation_complete(self, connection_manager: "ConnectionManager") -> None: ...

    def operation_failed(self, connection_manager: "ConnectionManager") -> None: ...


def _is_http_url(url: str) -> bool:
    try:
        parts = urlsplit(url)
    except (TypeError, ValueError):
        return False
    return parts.scheme in ("http", "https") and bool(parts.netloc)


class ConnectionManager:
    """Runs one GET at a time in a background thread and reports to a delegate.

    The delegate sees `response_received` once headers arrive, then
    `download_in_progress` per body chunk, then exactly one of
    `operation_complete` or `operation_failed`. The body is left in
    `received_data`.
    """

    CHUNK_SIZE = 8192

    def __init__(
        self,
        delegate: Optional[ConnectionManagerDelegate] = None,
        verbosity: VerbosityLevel = VerbosityLevel.OFF,
        session: Optional[requests.Session] = None,
        timeout: Optional[float] = None,
    ):
        self.delegate = delegate
        self.session = session or requests.Session()
        self.timeout = settings.request_timeout if timeout is None else timeout
        self.received_data: Optional[bytes] = None
        self.response: Optional[HTTPResponse] = None
        self.session_id: Optional[str] = None
        self._pending: Optional[Tuple[str, Dict[str, str]]] = None
        self._in_progress = False
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self.verbosity = verbosity

    @property
    def verbosity(self) -> VerbosityLevel:
        return self._verbosity

    @verbosity.setter
    def verbosity(self, value: VerbosityLevel) -> None:
        self._verbosity = value
        self._log = verbosity_logger(__name__, value)

    @property
    def in_progress(self) -> bool:
        return self._in_progress

    def get_message(
        self,
        url: str,
        headers: Optional[Mapping[str, str]] = None,
        begin_immediately: bool = True,
        session_id: Optional[str] = None,
    ) -> bool:
        """Prepare a GET for `url`; start it now unless told otherwise.

        Returns False if the URL is unusable or this manager is busy.
        """
        if not _is_http_url(url):
            self._log.error("Refusing to fetch non-HTTP URL")
            return False

        merged = dict(DEFAULT_HEADERS)
        merged.update(headers or {})
        with self._lock:
            if self._in_progress or self._pending is not None:
                self._log.error("Connection already in use")
                return False
            self._pending = (url, merged)
            self.session_id = session_id

        if begin_immediately:
            return self.start()
        return True

    def start(self) -> bool:
        with self._lock:
            if self._pending is None or self._in_progress:
                return False
            url, headers = self._pending
            self._pending = None
            self._in_progress = True
            self.received_data = None
            self.response = None

        self._thread = threading.Thread(
            target=self._run,
            args=(url, headers),
            name=f"connection-{self.session_id or id(self)}",
            daemon=True,
        )
        self._thread.start()
        return True

    def wait(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def _run(self, url: str, headers: Dict[str, str]) -> None:
        succeeded = False
        try:
            succeeded = self._perform(url, headers)
        except Exception:
            logger.exception("Connection raised during request")
        finally:
            with self._lock:
                self._in_progress = False
        if succeeded:
            self._notify("operation_complete")
        else:
            self._notify("operation_failed")

    def _perform(self, url: str, headers: Dict[str, str]) -> bool:
        try:
            response = self.session.get(
                url, headers=headers, timeout=self.timeout, stream=True
            )
        except requests.RequestException as exc:
            self._log.error("Request failed: %s", type(exc).__name__)
            return False

        try:
            self.response = HTTPResponse.from_requests(response)
            self._log.debug("Response %s %s", self.response.status_code, self.response.reason)
            self._notify("response_received", self.response)

            chunks = []
            for chunk in response.iter_content(chunk_size=self.CHUNK_SIZE):
                if chunk:
                    chunks.append(chunk)
                    self._notify("download_in_progress")
            self.received_data = b"".join(chunks)
        except requests.RequestException as exc:
            self._log.error("Download failed: %s", type(exc).__name__)
            return False
        finally:
            response.close()

        if not self.response.ok:
            self._log.error("Server returned HTTP %s", self.response.status_code)
            return False
        return True

    def _notify(self, event: str, *args: Any) -> None:
        delegate = self.delegate
        if delegate is None:
            return
        try:
            getattr(delegate, event)(self, *args)
        except Exception:
            # Delegate errors must not kill the connection thread.
            logger.exception("Delegate raised during %s", event)
