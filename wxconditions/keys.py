from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Dict, Optional

from .config import WUNDERGROUND_API_KEY_NAME, Settings
from .log import get_logger

logger = get_logger(__name__)


class SerialQueue:
    """FIFO executor that runs one task at a time.

    Backed by a single-worker thread pool, so everything submitted under one
    key runs in submission order and never overlaps.
    """

    def __init__(self, name: str):
        self.name = name
        self._executor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix=f"keyqueue-{name}"
        )

    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Future:
        return self._executor.submit(fn, *args, **kwargs)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


class KeyManager:
    """Named API keys plus one serial dispatch queue per key name."""

    def __init__(self) -> None:
        self._keys: Dict[str, str] = {}
        self._queues: Dict[str, SerialQueue] = {}
        self._lock = threading.Lock()

    def register(self, name: str, secret: str) -> None:
        if not secret:
            raise ValueError(f"Refusing to register an empty secret for {name!r}.")
        with self._lock:
            self._keys[name] = secret
        logger.debug("Registered API key %s", name)

    def revoke(self, name: str) -> None:
        # The queue stays so work already submitted still drains in order.
        with self._lock:
            self._keys.pop(name, None)
        logger.debug("Revoked API key %s", name)

    def key_available(self, name: str) -> bool:
        with self._lock:
            return name in self._keys

    def key(self, name: str) -> Optional[str]:
        with self._lock:
            return self._keys.get(name)

    def queue(self, name: str) -> Optional[SerialQueue]:
        with self._lock:
            return self._queue_locked(name)

    def acquire(self, name: str) -> Optional[SerialQueue]:
        """Check the key and hand out its queue in one step.

        Returns None when the key is not registered.
        """
        with self._lock:
            if name not in self._keys:
                return None
            return self._queue_locked(name)

    def _queue_locked(self, name: str) -> Optional[SerialQueue]:
        queue = self._queues.get(name)
        if queue is None:
            if name not in self._keys:
                return None
            queue = SerialQueue(name)
            self._queues[name] = queue
        return queue

    def load_from_settings(self, config: Settings) -> bool:
        if not config.wunderground_api_key:
            return False
        self.register(WUNDERGROUND_API_KEY_NAME, config.wunderground_api_key)
        return True

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            queues = list(self._queues.values())
            self._queues.clear()
        for queue in queues:
            queue.shutdown(wait=wait)


key_manager = KeyManager()
