"""Local-file crawl mode.

Walks a directory tree and feeds every image-looking file through the same
download & validation pipeline a web run uses, with a file reader in place of
the HTTP fetcher. Files whose content already exists in the output directory
are skipped as duplicates.
"""

import asyncio
import logging
from pathlib import Path
from typing import Iterator, Optional, Sequence

from image_crawler.adapters.base import CandidateItem, CrawlRun, ResolvedImage, RunSummary
from image_crawler.config import CrawlOptions
from image_crawler.errors import ConfigError
from image_crawler.events import RunEvents
from image_crawler.utils.download import DownloadPipeline, LocalFileFetcher, hashes_in
from image_crawler.utils.images import normalize_format
from image_crawler.utils.storage import FileStorage

logger = logging.getLogger("image_crawler.local")

PROVIDER = "local"


def scan_images(source: Path, file_types: Sequence[str], exclude: Optional[Path] = None) -> Iterator[Path]:
    """Files under ``source`` (recursive, sorted) whose extension is allowed."""
    allowed = {normalize_format(t) for t in file_types}
    for path in sorted(source.rglob("*")):
        if exclude is not None and exclude in path.parents:
            continue
        if not path.is_file() or path.name.startswith("."):
            continue
        if allowed and normalize_format(path.suffix) not in allowed:
            continue
        yield path


class LocalCrawler:
    def __init__(self, source, options: Optional[CrawlOptions] = None, *,
                 preserve_structure: bool = False, events: Optional[RunEvents] = None):
        self.source = Path(source)
        self.options = options or CrawlOptions()
        self.preserve_structure = preserve_structure
        self.run = CrawlRun(str(self.source), PROVIDER, self.options)
        self.events = events or RunEvents()

    def cancel(self, reason: str = "cancelled") -> None:
        self.run.cancel(reason)

    def _check(self) -> None:
        if not self.source.is_dir():
            raise ConfigError(f"Source directory {self.source} does not exist", provider=PROVIDER)
        if self.options.output_dir.resolve() == self.source.resolve():
            raise ConfigError("Output directory must differ from the source directory", provider=PROVIDER)

    async def execute(self) -> RunSummary:
        try:
            self._check()
        except ConfigError as exc:
            logger.error("%s", exc)
            self.events.error(exc.context())
            return self._finish("failed", exc.context())

        output = self.options.output_dir
        known = await asyncio.to_thread(hashes_in, output)
        logger.info("%d existing files in %s", len(known), output)

        pipeline = DownloadPipeline(
            self.run, LocalFileFetcher(), FileStorage(output), events=self.events, known_hashes=known
        )
        pipeline.start()
        try:
            for path in scan_images(self.source, self.options.file_types, exclude=output.resolve()):
                if self.run.should_stop():
                    break
                if not self.run.claim(path.resolve().as_uri()):
                    continue
                candidate = CandidateItem(
                    id=path.resolve().as_uri(),
                    provider=PROVIDER,
                    order=self.run.counters.found - 1,
                    thumbnail_url=str(path),
                    title=path.name,
                )
                item = self.run.track(ResolvedImage(candidate))
                item.resolve(str(path))
                subdir = None
                if self.preserve_structure:
                    rel = path.parent.relative_to(self.source)
                    subdir = str(rel) if str(rel) != "." else None
                await pipeline.submit(item, name=path.stem, subdir=subdir)
        except asyncio.CancelledError:
            self.run.cancel()
            raise
        finally:
            await pipeline.close()

        return self._finish("cancelled" if self.run.cancelled else "completed")

    def _finish(self, status: str, error=None) -> RunSummary:
        self.run.terminal = True
        summary = self.run.summary(status, error)
        logger.info("local crawl %s: %s", status, summary.counters.as_dict())
        self.events.complete(summary)
        return summary


async def crawl_local(source, options: Optional[CrawlOptions] = None, *,
                      preserve_structure: bool = False) -> RunSummary:
    return await LocalCrawler(source, options, preserve_structure=preserve_structure).execute()
