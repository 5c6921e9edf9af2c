"""Crawl run coordinator.

Owns one run from descriptor lookup to the terminal summary. The browser
side (search, scroll, extraction, resolution) runs as a single sequential
producer on one ``BrowserSession``; resolved images flow through a bounded
queue to the download workers, which run concurrently with it. API-mode
providers replace the browser side with JSON search requests made through the
download fetcher; no browser is started for them.
"""

import asyncio
import logging
from contextlib import AsyncExitStack
from typing import List, Mapping, Optional

from image_crawler.adapters.base import CrawlRun, ImageStatus, ResolvedImage, RunSummary
from image_crawler.api import search_api
from image_crawler.browser import open_session
from image_crawler.config import BrowserOptions, CrawlOptions
from image_crawler.descriptors import ProviderDescriptor, check_credentials
from image_crawler.errors import CrawlerError, ResolutionError
from image_crawler.events import RunEvents
from image_crawler.extraction import extract_candidates
from image_crawler.registry import DescriptorRegistry, pick_adapter
from image_crawler.resolver import after_scroll, resolve_full_size
from image_crawler.search import open_search
from image_crawler.utils.download import DownloadPipeline, HttpFetcher
from image_crawler.utils.images import ImageInspector
from image_crawler.utils.storage import FileStorage
from image_crawler.utils.stream import streaming_scroll_and_collect

logger = logging.getLogger("image_crawler.dispatcher")

TIMED_OUT = "timed_out"


class CrawlCoordinator:
    def __init__(
        self,
        descriptor: ProviderDescriptor,
        query: str,
        options: Optional[CrawlOptions] = None,
        *,
        events: Optional[RunEvents] = None,
        browser_options: Optional[BrowserOptions] = None,
        session=None,
        fetcher=None,
        storage: Optional[FileStorage] = None,
        inspector: Optional[ImageInspector] = None,
        credentials: Optional[Mapping[str, str]] = None,
    ):
        self.descriptor = descriptor
        self.query = query
        self.options = options or CrawlOptions()
        self.run = CrawlRun(query, descriptor.name, self.options)
        self.events = events or RunEvents()
        self.browser_options = browser_options
        self.session = session
        self.fetcher = fetcher
        self.storage = storage or FileStorage(self.options.output_dir)
        self.inspector = inspector or ImageInspector()
        self.credentials = credentials
        self.pipeline: Optional[DownloadPipeline] = None
        self._deferred: List[ResolvedImage] = []

    def cancel(self, reason: str = "cancelled") -> None:
        self.run.cancel(reason)

    # --- browser side -------------------------------------------------------

    async def _resolve_and_submit(self, session, item: ResolvedImage) -> None:
        if self.run.should_stop():
            return
        try:
            url = await resolve_full_size(session, item.candidate, self.descriptor)
        except ResolutionError as exc:
            logger.warning("%s", exc)
            await self.run.record(item, ImageStatus.FAILED, exc.message)
            self.events.progress(self.run.counters.as_dict())
            return
        item.resolve(url)
        await self.pipeline.submit(item)

    async def _collect(self, session) -> None:
        """One extraction pass; candidates go straight on to resolution."""
        for candidate in await extract_candidates(session, self.descriptor, self.run):
            if self.run.should_stop():
                return
            item = self.run.track(ResolvedImage(candidate))
            if after_scroll(self.descriptor.full_size):
                self._deferred.append(item)
            else:
                await self._resolve_and_submit(session, item)
        self.events.progress(self.run.counters.as_dict())

    async def _browse(self, session) -> None:
        await open_search(session, self.descriptor, self.query, self.options.search_options())
        await streaming_scroll_and_collect(session, self.descriptor, self.run, lambda: self._collect(session))
        if self._deferred:
            logger.info("[%s] visiting %d detail pages", self.descriptor.name, len(self._deferred))
        for item in self._deferred:
            if self.run.should_stop():
                break
            await self._resolve_and_submit(session, item)

    # --- API side ------------------------------------------------------------

    async def _search_api(self, fetcher, api_key: Optional[str]) -> None:
        """API results are already full size: they skip resolution."""
        batches = search_api(fetcher, self.descriptor, self.query, self.run, api_key,
                             self.options.search_options())
        async for batch in batches:
            for candidate in batch:
                if self.run.should_stop():
                    return
                item = self.run.track(ResolvedImage(candidate))
                item.resolve(candidate.reference)
                await self.pipeline.submit(item)
            self.events.progress(self.run.counters.as_dict())

    # --- lifecycle ----------------------------------------------------------

    def _check_runnable(self) -> Optional[str]:
        """The API key the descriptor needs, if any. Raises ConfigError when it is missing."""
        return check_credentials(self.descriptor, self.credentials)

    def _status(self) -> str:
        if self.run.stop_reason == TIMED_OUT:
            return TIMED_OUT
        if self.run.cancelled:
            return "cancelled"
        return "completed"

    async def execute(self) -> RunSummary:
        """Run to completion. Always emits exactly one ``complete`` event."""
        loop = asyncio.get_running_loop()
        timer = None
        error = None
        status = None
        try:
            api_key = self._check_runnable()
            if self.options.time_budget:
                timer = loop.call_later(self.options.time_budget, self.run.cancel, TIMED_OUT)
            async with AsyncExitStack() as stack:
                fetcher = self.fetcher
                if fetcher is None:
                    fetcher = await stack.enter_async_context(HttpFetcher(
                        timeout=self.options.download_timeout,
                        attempts=self.options.download_attempts,
                        backoff_base=self.options.backoff_base,
                    ))
                session = self.session
                if session is None and not self.descriptor.api_mode:
                    session = await stack.enter_async_context(open_session(self.browser_options))

                self.pipeline = DownloadPipeline(
                    self.run, fetcher, self.storage, self.inspector, events=self.events
                )
                self.pipeline.start()
                try:
                    if self.descriptor.api_mode:
                        await self._search_api(fetcher, api_key)
                    else:
                        await self._browse(session)
                except asyncio.CancelledError:
                    self.run.cancel()
                    raise
                finally:
                    await self.pipeline.close()
        except CrawlerError as exc:  # ConfigError, unrecovered NavigationError
            logger.error("run failed: %s", exc)
            error, status = exc.context(), "failed"
        except asyncio.CancelledError:
            self.run.cancel()
            self._finish("cancelled", None)
            raise
        except Exception as exc:
            logger.exception("run crashed")
            error, status = {"error": type(exc).__name__, "message": str(exc),
                             "provider": self.descriptor.name, "stage": "crawl", "url": None}, "failed"
        finally:
            if timer is not None:
                timer.cancel()

        if error is not None:
            self.events.error(error)
        return self._finish(status or self._status(), error)

    def _finish(self, status: str, error) -> RunSummary:
        self.run.terminal = True
        summary = self.run.summary(status, error)
        logger.info(
            "[%s] %s: %d found, %d downloaded, %d skipped, %d failed in %.1fs",
            self.descriptor.name, status, summary.counters.found, summary.counters.downloaded,
            summary.counters.skipped, summary.counters.failed, summary.elapsed,
        )
        self.events.complete(summary)
        return summary


class CrawlHandle:
    """What ``start_crawl`` hands back: the event stream, a cancel switch and the result."""

    def __init__(self, coordinator: CrawlCoordinator, task: "asyncio.Task[RunSummary]"):
        self.coordinator = coordinator
        self.events = coordinator.events
        self.task = task

    @property
    def run(self) -> CrawlRun:
        return self.coordinator.run

    def cancel(self, reason: str = "cancelled") -> None:
        self.coordinator.cancel(reason)

    async def result(self) -> RunSummary:
        return await self.events.result()

    def __aiter__(self):
        return self.events.__aiter__()


def start_crawl(query: str, provider, options: Optional[CrawlOptions] = None, *,
                registry: Optional[DescriptorRegistry] = None, **kwargs) -> CrawlHandle:
    """Start a run in the background. ``provider`` is a name or a ProviderDescriptor.

    Must be called from inside a running event loop. Unknown provider names
    raise ConfigError here, before anything is started.
    """
    descriptor = provider if isinstance(provider, ProviderDescriptor) else pick_adapter(provider, registry)
    coordinator = CrawlCoordinator(descriptor, query, options, **kwargs)
    task = asyncio.create_task(coordinator.execute(), name=f"crawl-{descriptor.key}")
    return CrawlHandle(coordinator, task)


async def crawl(query: str, provider, options: Optional[CrawlOptions] = None, **kwargs) -> RunSummary:
    """Run a crawl to completion and return its summary."""
    handle = start_crawl(query, provider, options, **kwargs)
    await handle.task
    return await handle.result()
