"""Tests for detached side-effect execution."""

from __future__ import annotations

import asyncio
import logging

import pytest

from feedback_core.services.dispatcher import SideEffectDispatcher


@pytest.mark.asyncio
async def test_spawn_returns_before_side_effect_completes() -> None:
    dispatcher = SideEffectDispatcher()
    started = asyncio.Event()
    release = asyncio.Event()
    done: list[str] = []

    async def slow() -> None:
        started.set()
        await release.wait()
        done.append("x")

    dispatcher.spawn(slow(), name="slow")
    await started.wait()
    assert done == []
    assert dispatcher.pending == 1

    release.set()
    await dispatcher.drain()
    assert done == ["x"]
    assert dispatcher.pending == 0


@pytest.mark.asyncio
async def test_failures_are_logged_not_raised(caplog: pytest.LogCaptureFixture) -> None:
    dispatcher = SideEffectDispatcher()

    async def broken() -> None:
        raise RuntimeError("smtp down")

    with caplog.at_level(logging.WARNING, logger="feedback_core.services.dispatcher"):
        dispatcher.spawn(broken(), name="notify")
        await dispatcher.drain()

    records = [r for r in caplog.records if r.getMessage() == "side_effect.failed"]
    assert len(records) == 1
    assert records[0].task_name == "notify"
    assert records[0].error_msg == "smtp down"


@pytest.mark.asyncio
async def test_drain_with_nothing_pending() -> None:
    await SideEffectDispatcher().drain()
