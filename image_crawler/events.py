"""Per-run event channel handed back to whoever started the crawl."""

import asyncio
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, Optional

from image_crawler.adapters.base import RunSummary


@dataclass(frozen=True)
class RunEvent:
    kind: str                                      # progress | error | complete
    payload: Dict[str, Any]
    summary: Optional[RunSummary] = None


class RunEvents:
    """Queue of progress/error events, closed by exactly one ``complete``.

    Iterate it with ``async for`` to follow a run, or just ``await
    events.result()`` for the terminal summary.
    """

    def __init__(self):
        self._queue: "asyncio.Queue[RunEvent]" = asyncio.Queue()
        self._result: "asyncio.Future[RunSummary]" = asyncio.get_running_loop().create_future()

    @property
    def done(self) -> bool:
        return self._result.done()

    def progress(self, counters: Dict[str, Any]) -> None:
        if not self.done:
            self._queue.put_nowait(RunEvent("progress", dict(counters)))

    def error(self, context: Dict[str, Any]) -> None:
        if not self.done:
            self._queue.put_nowait(RunEvent("error", dict(context)))

    def complete(self, summary: RunSummary) -> None:
        if self.done:
            raise RuntimeError("run already has a terminal summary")
        self._result.set_result(summary)
        self._queue.put_nowait(RunEvent("complete", summary.to_dict(), summary))

    async def result(self) -> RunSummary:
        return await asyncio.shield(self._result)

    async def __aiter__(self) -> AsyncIterator[RunEvent]:
        while True:
            event = await self._queue.get()
            yield event
            if event.kind == "complete":
                return
