"""Download & validation pipeline.

The browser side of a run produces ``ResolvedImage`` entries; a bounded queue
hands them to ``concurrency`` worker tasks that fetch, validate and persist
them. Fetching is behind a small fetcher interface so local-file mode can
reuse everything past the network call.
"""

import asyncio
import hashlib
import logging
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple

import aiofiles
import aiohttp

from image_crawler.adapters.base import TERMINAL, CrawlRun, ImageStatus, ResolvedImage
from image_crawler.browser import UA
from image_crawler.errors import DownloadError, ValidationError
from image_crawler.utils.images import ImageInspector, extension_for
from image_crawler.utils.storage import FileStorage, filename_from_url

logger = logging.getLogger("image_crawler.download")

TRANSIENT_STATUSES = {408, 429, 500, 502, 503, 504}


class HttpFetcher:
    """aiohttp GET with a per-request timeout and exponential backoff.

    Use as an async context manager; it owns one ``ClientSession`` for the run.
    """

    def __init__(self, timeout: float = 20.0, attempts: int = 2, backoff_base: float = 0.5,
                 user_agent: str = UA, session: Optional[aiohttp.ClientSession] = None):
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.attempts = attempts
        self.backoff_base = backoff_base
        self.headers = {"User-Agent": user_agent, "Accept": "image/avif,image/webp,image/*,*/*;q=0.8"}
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> "HttpFetcher":
        if self._session is None:
            self._session = aiohttp.ClientSession(headers=self.headers, timeout=self.timeout)
        return self

    async def __aexit__(self, *exc_info) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    async def _get(self, url: str, headers: Optional[Dict[str, str]] = None) -> bytes:
        try:
            async with self._session.get(url, headers=headers, timeout=self.timeout) as response:
                if response.status != 200:
                    raise DownloadError(
                        f"HTTP {response.status}",
                        transient=response.status in TRANSIENT_STATUSES,
                        status=response.status,
                        url=url,
                    )
                return await response.read()
        except aiohttp.ClientError as exc:
            raise DownloadError(f"{type(exc).__name__}: {exc}", transient=True, url=url) from exc
        except asyncio.TimeoutError as exc:
            raise DownloadError("timed out", transient=True, url=url) from exc

    async def fetch(self, url: str, headers: Optional[Dict[str, str]] = None) -> bytes:
        """GET ``url``; ``headers`` are added to the session defaults for this request."""
        if self._session is None:
            raise RuntimeError("HttpFetcher used outside 'async with'")
        attempt = 1
        while True:
            try:
                return await self._get(url, headers)
            except DownloadError as exc:
                if not exc.transient or attempt >= self.attempts:
                    raise
                delay = self.backoff_base * (2 ** (attempt - 1))
                logger.debug("retrying %s in %.2fs after %s", url, delay, exc.message)
                await asyncio.sleep(delay)
                attempt += 1


class LocalFileFetcher:
    """Reads images that are already on disk (local crawl mode)."""

    async def __aenter__(self) -> "LocalFileFetcher":
        return self

    async def __aexit__(self, *exc_info) -> None:
        return None

    async def fetch(self, path: str) -> bytes:
        try:
            async with aiofiles.open(path, "rb") as f:
                return await f.read()
        except OSError as exc:
            raise DownloadError(f"cannot read file: {exc}", url=str(path)) from exc


def content_hash(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


# (item, file stem, subdirectory)
_Entry = Tuple[ResolvedImage, Optional[str], Optional[str]]


class DownloadPipeline:
    """Bounded worker pool: fetch -> validate -> dedup by content -> persist.

    ``submit`` refuses new work once the run's budget is reached or it was
    cancelled. ``close`` drains queued work, or cancels in-flight work if the
    run was cancelled, and returns only when every worker has exited.
    """

    def __init__(self, run: CrawlRun, fetcher, storage: FileStorage,
                 inspector: Optional[ImageInspector] = None, events=None,
                 known_hashes: Optional[Set[str]] = None):
        self.run = run
        self.options = run.options
        self.fetcher = fetcher
        self.storage = storage
        self.inspector = inspector or ImageInspector()
        self.events = events
        self.hashes: Set[str] = set(known_hashes or ())
        self.queue: "asyncio.Queue[Optional[_Entry]]" = asyncio.Queue(maxsize=self.options.concurrency * 2)
        self._workers: List[asyncio.Task] = []
        self._watcher: Optional[asyncio.Task] = None
        self._closed = False

    def start(self) -> None:
        if self._workers:
            return
        self._workers = [
            asyncio.create_task(self._worker(n), name=f"download-worker-{n}")
            for n in range(self.options.concurrency)
        ]
        self._watcher = asyncio.create_task(self._watch_cancel(), name="download-cancel-watch")

    async def submit(self, item: ResolvedImage, name: Optional[str] = None, subdir: Optional[str] = None) -> bool:
        """Queue one resolved image; False when the pipeline no longer admits work."""
        if self._closed or self.run.should_stop():
            return False
        await self.queue.put((item, name, subdir))
        return True

    async def close(self) -> None:
        self._closed = True
        if not self.run.cancelled:
            for _ in self._workers:
                await self.queue.put(None)
        await asyncio.gather(*self._workers, return_exceptions=True)
        if self._watcher is not None:
            self._watcher.cancel()
            await asyncio.gather(self._watcher, return_exceptions=True)
        logger.info("download pipeline closed: %s", self.run.counters.as_dict())

    async def _watch_cancel(self) -> None:
        await self.run.cancel_event.wait()
        logger.info("cancellation requested, stopping %d download workers", len(self._workers))
        for worker in self._workers:
            worker.cancel()
        # unblock a producer waiting on a full queue
        while not self.queue.empty():
            self.queue.get_nowait()

    async def _worker(self, n: int) -> None:
        while True:
            entry = await self.queue.get()
            if entry is None:
                return
            item, name, subdir = entry
            if self.run.should_stop():
                continue
            try:
                await self.process(item, name, subdir)
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # one bad item must not kill the worker
                logger.exception("worker %d: unexpected error on %s", n, item.full_size_url)
                if item.status not in TERMINAL:
                    await self.run.record(item, ImageStatus.FAILED, f"internal error: {exc}")
                    self._progress()

    def _progress(self) -> None:
        if self.events is not None:
            self.events.progress(self.run.counters.as_dict())

    async def _finish(self, item: ResolvedImage, status: ImageStatus, reason: Optional[str] = None,
                      reserved: bool = False) -> None:
        await self.run.record(item, status, reason, reserved=reserved)
        log = logger.info if status is ImageStatus.DOWNLOADED else logger.debug
        log("[%s] %s %s%s", item.candidate.provider, status.value, item.full_size_url,
            f" ({reason})" if reason else "")
        self._progress()

    def _validate(self, item: ResolvedImage, data: bytes):
        opts = self.options
        item.size = len(data)
        if len(data) < opts.min_file_size:
            raise ValidationError("file too small")
        info = self.inspector.inspect(data)
        item.width, item.height = info.width, info.height
        self.inspector.check(info, opts.min_width, opts.min_height, opts.file_types)
        digest = content_hash(data)
        if digest in self.hashes:
            raise ValidationError("duplicate content")
        self.hashes.add(digest)
        return info

    async def process(self, item: ResolvedImage, name: Optional[str] = None, subdir: Optional[str] = None) -> None:
        url = item.full_size_url
        try:
            data = await self.fetcher.fetch(url)
        except DownloadError as exc:
            await self._finish(item, ImageStatus.SKIPPED, exc.message)
            return

        try:
            info = self._validate(item, data)
        except ValidationError as exc:
            await self._finish(item, ImageStatus.SKIPPED, exc.reason)
            return

        if not await self.run.reserve_slot():
            logger.debug("budget reached, dropping %s", url)
            return

        try:
            if self.options.output_format:
                data = await asyncio.to_thread(
                    self.inspector.reencode, data, self.options.output_format, self.options.quality
                )
                item.size = len(data)
            ext = extension_for(info, self.options.output_format)
            path = await self.storage.save(data, name or filename_from_url(url), ext, subdir)
        except asyncio.CancelledError:
            await self.run.release_slot()
            raise
        except (OSError, ValueError) as exc:
            await self._finish(item, ImageStatus.FAILED, f"could not save: {exc}", reserved=True)
            return

        item.path = str(path)
        await self._finish(item, ImageStatus.DOWNLOADED, reserved=True)


def hashes_in(directory: Path) -> Set[str]:
    """Content hashes of the files already in ``directory`` (recursive)."""
    found: Set[str] = set()
    directory = Path(directory)
    if not directory.is_dir():
        return found
    for path in directory.rglob("*"):
        if path.is_file() and not path.name.startswith("."):
            try:
                found.add(content_hash(path.read_bytes()))
            except OSError as exc:
                logger.debug("cannot hash %s: %s", path, exc)
    return found
