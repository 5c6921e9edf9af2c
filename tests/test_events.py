import asyncio

import pytest

from image_crawler.adapters.base import RunCounters, RunSummary
from image_crawler.events import RunEvents


def summary(status="completed"):
    return RunSummary(query="cats", provider="Example", status=status, counters=RunCounters(found=1), elapsed=0.5)


async def test_iteration_ends_with_complete():
    events = RunEvents()
    events.progress({"found": 1})
    events.error({"stage": "resolution"})
    events.complete(summary())
    kinds = [event.kind async for event in events]
    assert kinds == ["progress", "error", "complete"]


async def test_second_complete_is_refused():
    events = RunEvents()
    events.complete(summary())
    with pytest.raises(RuntimeError):
        events.complete(summary("failed"))
    assert (await events.result()).status == "completed"


async def test_nothing_is_emitted_after_complete():
    events = RunEvents()
    events.complete(summary())
    events.progress({"found": 2})
    kinds = [event.kind async for event in events]
    assert kinds == ["complete"]


async def test_result_waits_for_completion():
    events = RunEvents()
    waiter = asyncio.create_task(events.result())
    await asyncio.sleep(0)
    assert not waiter.done()
    events.complete(summary())
    assert (await waiter).counters.found == 1


async def test_complete_payload_is_the_summary_dict():
    events = RunEvents()
    events.complete(summary())
    event = [e async for e in events][0]
    assert event.payload["status"] == "completed"
    assert event.payload["found"] == 1
    assert event.summary.provider == "Example"
