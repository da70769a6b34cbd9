"""Tests for cancellation tokens."""
import threading
import time

from protoreg.services.codegen.cancellation import CancellationToken


class TestCancellationToken:
    def test_starts_uncancelled(self):
        token = CancellationToken()
        assert token.cancelled is False
        assert token.reason == ""

    def test_first_reason_is_kept(self):
        token = CancellationToken()
        token.cancel("client disconnected")
        token.cancel("shutdown")
        assert token.cancelled is True
        assert token.reason == "client disconnected"

    def test_child_sees_parent_cancellation(self):
        parent = CancellationToken()
        child = parent.child()
        parent.cancel("batch cancelled")
        assert child.cancelled is True
        assert child.reason == "batch cancelled"

    def test_cancelling_child_leaves_parent_alone(self):
        parent = CancellationToken()
        parent.child().cancel()
        assert parent.cancelled is False

    def test_wait_returns_when_cancelled(self):
        token = CancellationToken()
        threading.Timer(0.1, token.cancel).start()
        started = time.monotonic()
        assert token.wait(5) is True
        assert time.monotonic() - started < 2

    def test_wait_times_out(self):
        assert CancellationToken().wait(0.1) is False
