"""Shared fixtures.

The config directory is redirected before any sshhop module is imported,
because sshhop.config loads (and creates) its file at import time.
"""

import os
import tempfile

os.environ["SSHHOP_CONFIG_DIR"] = tempfile.mkdtemp(prefix="sshhop-test-")

from concurrent.futures import Future  # noqa: E402

import pytest  # noqa: E402

from sshhop.history import HistoryStore  # noqa: E402


class FakeLoop:
    """Stands in for the asyncio loop: queues callbacks until told to run them."""

    def __init__(self):
        self.ready = []
        self.timers = []

    def call_soon_threadsafe(self, fn, *args):
        self.ready.append((fn, args))

    def call_later(self, delay, fn, *args):
        self.timers.append((delay, fn, args))

    def run_ready(self):
        while self.ready:
            fn, args = self.ready.pop(0)
            fn(*args)

    def fire_timers(self):
        timers, self.timers = self.timers, []
        for _, fn, args in timers:
            fn(*args)


class InlineExecutor:
    """Runs submitted work immediately on the calling thread."""

    def __init__(self):
        self.submitted = []

    def submit(self, fn, *args):
        self.submitted.append(fn)
        future = Future()
        try:
            future.set_result(fn(*args))
        except Exception as e:
            future.set_exception(e)
        return future

    def shutdown(self, wait=True):
        pass


@pytest.fixture()
def fake_loop():
    return FakeLoop()


@pytest.fixture()
def inline_executor():
    return InlineExecutor()


@pytest.fixture()
def history(tmp_path):
    return HistoryStore(path=str(tmp_path / "history.json"), legacy_path=None)

