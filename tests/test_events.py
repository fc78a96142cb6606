"""Notification channels and cancellable waits."""

from __future__ import annotations

import asyncio

import pytest

from matpilot.cancel import Cancelled, CancelScope
from matpilot.events import Signal


def test_signal_delivers_in_subscription_order() -> None:
    signal = Signal("demo")
    seen = []
    signal.connect(lambda value: seen.append(("a", value)))
    unsubscribe = signal.connect(lambda value: seen.append(("b", value)))
    signal.emit(1)
    unsubscribe()
    signal.emit(2)
    assert seen == [("a", 1), ("b", 1), ("a", 2)]
    assert len(signal) == 1


def test_failing_listener_does_not_block_others(caplog: pytest.LogCaptureFixture) -> None:
    signal = Signal("demo")
    seen = []

    def broken(value):
        raise RuntimeError("view crashed")

    signal.connect(broken)
    signal.connect(seen.append)
    signal.emit("ok")
    assert seen == ["ok"]
    assert "Listener for demo failed" in caplog.text


def test_scope_sleep_returns_normally() -> None:
    async def scenario():
        scope = CancelScope()
        await scope.sleep(0.01)
        return scope.cancelled

    assert asyncio.run(scenario()) is False


def test_scope_sleep_raises_once_cancelled() -> None:
    async def scenario():
        scope = CancelScope()
        asyncio.get_running_loop().call_later(0.01, scope.cancel)
        await scope.sleep(5)

    with pytest.raises(Cancelled):
        asyncio.run(scenario())


def test_scope_wait_cancels_the_pending_awaitable() -> None:
    async def scenario():
        scope = CancelScope()
        inner = asyncio.ensure_future(asyncio.sleep(5, result="late"))
        asyncio.get_running_loop().call_later(0.01, scope.cancel)
        with pytest.raises(Cancelled):
            await scope.wait(inner)
        await asyncio.sleep(0.01)
        return inner.cancelled()

    assert asyncio.run(scenario()) is True


def test_scope_wait_returns_result() -> None:
    async def scenario():
        scope = CancelScope()
        return await scope.wait(asyncio.sleep(0.01, result=42))

    assert asyncio.run(scenario()) == 42
