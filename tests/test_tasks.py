"""Tests for adpilot.core.tasks.DetachedTaskGroup."""
from __future__ import annotations

import asyncio
import logging

import pytest

from adpilot.core.tasks import DetachedTaskGroup, get_detached_tasks


@pytest.mark.asyncio
async def test_spawned_task_outlives_caller_and_is_released() -> None:
    group = DetachedTaskGroup("test")
    done = asyncio.Event()

    async def work() -> str:
        await asyncio.sleep(0.01)
        done.set()
        return "saved"

    task = group.spawn(work(), name="persist-1")
    assert len(group) == 1
    assert await group.drain(timeout=1)
    assert done.is_set()
    assert task.result() == "saved"
    assert len(group) == 0


@pytest.mark.asyncio
async def test_failures_are_logged_and_counted(caplog: pytest.LogCaptureFixture) -> None:
    group = DetachedTaskGroup("test")

    async def boom() -> None:
        raise RuntimeError("store unavailable")

    with caplog.at_level(logging.ERROR):
        group.spawn(boom(), name="persist-2")
        await group.drain(timeout=1)
        await asyncio.sleep(0)

    assert group.failures == 1
    assert "task persist-2 failed: store unavailable" in caplog.text


@pytest.mark.asyncio
async def test_drain_timeout_then_cancel() -> None:
    group = DetachedTaskGroup("test")
    task = group.spawn(asyncio.sleep(10), name="slow")

    assert await group.drain(timeout=0.01) is False
    await group.cancel_all()

    assert task.cancelled()
    assert len(group) == 0


def test_shared_group_is_a_singleton() -> None:
    assert get_detached_tasks() is get_detached_tasks()
