# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the background dispatcher."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from schoolportal.infrastructure.background import BackgroundDispatcher


class TestBackgroundDispatcher:
    """Tests for BackgroundDispatcher."""

    @pytest.mark.asyncio
    async def test_dispatch_runs_task(self) -> None:
        """Test that a dispatched coroutine runs with its arguments."""
        dispatcher = BackgroundDispatcher(max_pending=10, workers=1)
        task = AsyncMock()

        assert dispatcher.dispatch("job", task, 1, key="v") is True
        await dispatcher.drain()

        task.assert_awaited_once_with(1, key="v")
        assert dispatcher.completed == 1
        await dispatcher.stop()

    @pytest.mark.asyncio
    async def test_failure_is_counted_not_raised(self) -> None:
        """Test that a failing task never reaches the caller."""
        dispatcher = BackgroundDispatcher(max_pending=10, workers=1)
        dispatcher.start()

        dispatcher.dispatch("boom", AsyncMock(side_effect=RuntimeError("boom")))
        dispatcher.dispatch("ok", AsyncMock())
        await dispatcher.drain()

        assert dispatcher.failed == 1
        assert dispatcher.completed == 1
        assert dispatcher.is_running
        await dispatcher.stop()

    @pytest.mark.asyncio
    async def test_full_queue_drops(self) -> None:
        """Test that dispatch beyond max_pending is dropped."""
        dispatcher = BackgroundDispatcher(max_pending=1, workers=1)
        gate = asyncio.Event()

        async def blocked() -> None:
            await gate.wait()

        dispatcher.start()
        dispatcher.dispatch("first", blocked)
        await asyncio.sleep(0)  # worker takes the first job
        assert dispatcher.dispatch("second", AsyncMock()) is True
        assert dispatcher.dispatch("third", AsyncMock()) is False
        assert dispatcher.dropped == 1

        gate.set()
        await dispatcher.drain()
        assert dispatcher.completed == 2
        await dispatcher.stop()

    @pytest.mark.asyncio
    async def test_stop_drains_then_rejects(self) -> None:
        """Test that stop runs queued work and closes the dispatcher."""
        dispatcher = BackgroundDispatcher(max_pending=10, workers=2)
        task = AsyncMock()
        for _ in range(3):
            dispatcher.dispatch("job", task)

        await dispatcher.stop()

        assert task.await_count == 3
        assert not dispatcher.is_running
        assert dispatcher.dispatch("late", task) is False
        assert dispatcher.dropped == 1
