import os
import sys
import threading

import pytest

# Ensure project root is on sys.path so tests can import `wxconditions` when
# pytest is invoked from the repository root or other working directories.
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from wxconditions.keys import KeyManager  # noqa: E402

TEST_KEY_NAME = "TestKey"
TEST_SECRET = "secret123"


class RecordingListener:
    """Listener that records every outcome it is given."""

    def __init__(self):
        self.calls = []
        self.event = threading.Event()

    def conditions_complete(self, fetcher, *values):
        self.calls.append(("complete", values))
        self.event.set()

    def conditions_failed(self, fetcher, response):
        self.calls.append(("failed", response))
        self.event.set()


class FakeConnection:
    """Stands in for ConnectionManager; records requests instead of sending them."""

    def __init__(self, start_result=True, label=None, order=None, on_start=None):
        self.start_result = start_result
        self.label = label
        self.order = order if order is not None else []
        self.on_start = on_start
        self.delegate = None
        self.verbosity = None
        self.received_data = None
        self.requests = []

    def get_message(self, url, headers=None, begin_immediately=True, session_id=None):
        self.order.append(f"{self.label}:start")
        self.requests.append((url, headers, begin_immediately, session_id))
        if self.on_start is not None:
            self.on_start()
        self.order.append(f"{self.label}:end")
        return self.start_result


@pytest.fixture()
def keys():
    manager = KeyManager()
    manager.register(TEST_KEY_NAME, TEST_SECRET)
    yield manager
    manager.shutdown(wait=False)


@pytest.fixture()
def listener():
    return RecordingListener()


@pytest.fixture()
def conditions_payload():
    return {
        "response": {"version": "0.1"},
        "current_observation": {
            "temp_f": 66.2,
            "temp_c": 19.0,
            "weather": "Partly Cloudy",
            "icon": "partlycloudy",
            "local_tz_short": "PDT",
            "local_tz_offset": "-0700",
        },
    }
