"""
Brief: Global pytest configuration enforcing per-test 10s timeout and
shared fakes for the LLM pipeline.

Inputs:
  - None

Outputs:
  - None
"""

import os
import signal
import sys

import pytest

# Ensure 'src' is on sys.path so 'dnsprompt' package is importable in tests
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
SRC_DIR = os.path.join(ROOT, "src")
if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)


def _alarm_handler(signum, frame):
    """
    Brief: Signal handler that raises TimeoutError when alarm triggers.

    Inputs:
      - signum: signal number (int)
      - frame: current frame (ignored)

    Outputs:
      - None: Raises TimeoutError to fail the test
    """
    raise TimeoutError("Test exceeded 10 seconds")


# Install handler if supported on this platform
if hasattr(signal, "SIGALRM"):
    signal.signal(signal.SIGALRM, _alarm_handler)


@pytest.fixture(autouse=True)
def enforce_test_timeout():
    """
    Brief: Enforce a hard 10-second timeout for each test.

    Inputs:
      - None

    Outputs:
      - None: Cancels alarm after test
    """
    if hasattr(signal, "SIGALRM"):
        signal.alarm(10)
        try:
            yield
        finally:
            signal.alarm(0)
    else:
        # Fallback: no-op on platforms without SIGALRM
        yield


class FakeResponse:
    """Minimal stand-in for requests.Response."""

    def __init__(self, status_code=200, json_data=None, text="", json_exc=None):
        self.status_code = status_code
        self._json = json_data
        self.text = text
        self._json_exc = json_exc

    def json(self):
        if self._json_exc is not None:
            raise self._json_exc
        return self._json


class FakeSession:
    """
    Brief: requests.Session stand-in returning scripted results per model.

    Inputs:
      - script: mapping model -> FakeResponse or Exception instance

    Outputs:
      - Records every POST in .calls as (url, json, headers, timeout).
    """

    def __init__(self, script):
        self.script = dict(script)
        self.calls = []

    def post(self, url, json=None, headers=None, timeout=None):
        self.calls.append((url, json, headers, timeout))
        result = self.script[json["model"]]
        if isinstance(result, Exception):
            raise result
        return result

    @property
    def models_called(self):
        return [c[1]["model"] for c in self.calls]


def ok_response(content):
    return FakeResponse(200, {"choices": [{"message": {"content": content}}]})
