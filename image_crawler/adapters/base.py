import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from image_crawler.config import CrawlOptions


class ImageStatus(str, Enum):
    PENDING = "pending"
    RESOLVED = "resolved"
    DOWNLOADED = "downloaded"
    SKIPPED = "skipped"
    FAILED = "failed"


_RANK = {
    ImageStatus.PENDING: 0,
    ImageStatus.RESOLVED: 1,
    ImageStatus.DOWNLOADED: 2,
    ImageStatus.SKIPPED: 2,
    ImageStatus.FAILED: 2,
}
TERMINAL = {ImageStatus.DOWNLOADED, ImageStatus.SKIPPED, ImageStatus.FAILED}


@dataclass(frozen=True)
class CandidateItem:                               # One deduplicated image reference found on a results page
    id: str                                        # Normalized absolute URL, the run-wide dedup key
    provider: str                                  # Name of the descriptor that found it
    order: int                                     # Discovery order within the run
    thumbnail_url: Optional[str]                   # Raw image reference (may already be full size)
    detail_url: Optional[str] = None               # Link to a detail page, for link-based extraction
    title: Optional[str] = None                    # Title/alt text when the descriptor reads one
    element: Any = field(default=None, compare=False, repr=False)  # Page element, for click-to-open lightboxes

    @property
    def reference(self) -> str:
        """What the full-size resolver starts from."""
        return self.detail_url or self.thumbnail_url


@dataclass
class ResolvedImage:
    """Resolution and download state of one candidate. Status only moves forward."""

    candidate: CandidateItem
    full_size_url: Optional[str] = None
    status: ImageStatus = ImageStatus.PENDING
    reason: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    size: Optional[int] = None
    path: Optional[str] = None

    def advance(self, status: ImageStatus, reason: Optional[str] = None) -> None:
        if self.status in TERMINAL or _RANK[status] <= _RANK[self.status]:
            raise ValueError(f"Cannot move {self.candidate.id} from {self.status.value} to {status.value}")
        self.status = status
        if reason:
            self.reason = reason

    def resolve(self, url: str) -> None:
        self.full_size_url = url
        self.advance(ImageStatus.RESOLVED)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.candidate.id,
            "provider": self.candidate.provider,
            "order": self.candidate.order,
            "thumbnail_url": self.candidate.thumbnail_url,
            "detail_url": self.candidate.detail_url,
            "title": self.candidate.title,
            "full_size_url": self.full_size_url,
            "status": self.status.value,
            "reason": self.reason,
            "width": self.width,
            "height": self.height,
            "size": self.size,
            "path": self.path,
        }


@dataclass
class RunCounters:
    found: int = 0
    downloaded: int = 0
    skipped: int = 0
    failed: int = 0

    def as_dict(self) -> Dict[str, int]:
        return {"found": self.found, "downloaded": self.downloaded, "skipped": self.skipped, "failed": self.failed}


@dataclass
class RunSummary:
    query: str
    provider: str
    status: str                                    # completed | cancelled | timed_out | failed
    counters: RunCounters
    elapsed: float
    error: Optional[Dict[str, Any]] = None
    items: List[ResolvedImage] = field(default_factory=list)

    @property
    def downloaded(self) -> int:
        return self.counters.downloaded

    def to_dict(self) -> Dict[str, Any]:
        return {
            "query": self.query,
            "provider": self.provider,
            "status": self.status,
            **self.counters.as_dict(),
            "elapsed": round(self.elapsed, 3),
            "error": self.error,
        }


class CrawlRun:
    """Mutable state of one run: counters, dedup set, budget and cancellation.

    Counter updates and persistence-slot reservations go through ``lock`` so
    the download workers never race each other past ``max_results``.
    """

    def __init__(self, query: str, provider: str, options: CrawlOptions):
        self.query = query
        self.provider = provider
        self.options = options
        self.counters = RunCounters()
        self.items: List[ResolvedImage] = []
        self.seen: Set[str] = set()
        self.lock = asyncio.Lock()
        self.cancel_event = asyncio.Event()
        self.stop_reason: Optional[str] = None
        self.terminal = False
        self.started = time.monotonic()
        self._reserved = 0

    # --- cancellation -------------------------------------------------------

    def cancel(self, reason: str = "cancelled") -> None:
        if not self.cancel_event.is_set():
            self.stop_reason = reason
            self.cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    # --- budgets ------------------------------------------------------------

    @property
    def budget_reached(self) -> bool:
        return self.counters.downloaded + self._reserved >= self.options.max_results

    def should_stop(self) -> bool:
        """Checked by the browser side before every scroll step and resolution."""
        return self.cancelled or self.budget_reached

    def collected_enough(self) -> bool:
        return self.counters.found >= self.options.candidate_cap

    # --- dedup --------------------------------------------------------------

    def claim(self, candidate_id: str) -> bool:
        """Register a candidate id; False if the run has already seen it."""
        if candidate_id in self.seen:
            return False
        self.seen.add(candidate_id)
        self.counters.found += 1
        return True

    def track(self, item: ResolvedImage) -> ResolvedImage:
        self.items.append(item)
        return item

    # --- counters -----------------------------------------------------------

    async def reserve_slot(self) -> bool:
        async with self.lock:
            if self.cancelled or self.budget_reached:
                return False
            self._reserved += 1
            return True

    async def release_slot(self) -> None:
        async with self.lock:
            self._reserved -= 1

    async def record(self, item: ResolvedImage, status: ImageStatus, reason: Optional[str] = None,
                     *, reserved: bool = False) -> None:
        async with self.lock:
            item.advance(status, reason)
            if reserved:
                self._reserved -= 1
            if status is ImageStatus.DOWNLOADED:
                self.counters.downloaded += 1
            elif status is ImageStatus.SKIPPED:
                self.counters.skipped += 1
            elif status is ImageStatus.FAILED:
                self.counters.failed += 1

    def summary(self, status: str, error: Optional[Dict[str, Any]] = None) -> RunSummary:
        return RunSummary(
            query=self.query,
            provider=self.provider,
            status=status,
            counters=RunCounters(**self.counters.as_dict()),
            elapsed=time.monotonic() - self.started,
            error=error,
            items=list(self.items),
        )
