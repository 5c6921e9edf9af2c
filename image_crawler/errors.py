"""Error taxonomy shared by every stage of a crawl run.

Only ``ConfigError`` and an unrecovered ``NavigationError`` end a run; every
other error is caught at the stage that raised it and turned into a counted
outcome (failed or skipped) for a single item.
"""

from typing import Iterable, Optional


class CrawlerError(Exception):
    """Base class. Carries enough context to tell which item broke where."""

    stage = "crawl"

    def __init__(
        self,
        message: str,
        *,
        provider: Optional[str] = None,
        stage: Optional[str] = None,
        url: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.url = url
        if stage:
            self.stage = stage

    def context(self) -> dict:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "provider": self.provider,
            "stage": self.stage,
            "url": self.url,
        }

    def __str__(self) -> str:
        where = ", ".join(
            f"{k}={v}" for k, v in (("provider", self.provider), ("stage", self.stage), ("url", self.url)) if v
        )
        return f"{self.message} ({where})" if where else self.message


class ConfigError(CrawlerError):
    """Invalid provider descriptor or options. Raised before any network call."""

    stage = "config"

    def __init__(self, message: str, *, problems: Iterable[str] = (), **kwargs):
        self.problems = list(problems)
        if self.problems:
            message = f"{message}: " + "; ".join(self.problems)
        super().__init__(message, **kwargs)


class NavigationError(CrawlerError):
    stage = "navigation"


class ExtractionError(CrawlerError):
    stage = "extraction"


class ResolutionError(CrawlerError):
    stage = "resolution"


class DownloadError(CrawlerError):
    stage = "download"

    def __init__(self, message: str, *, transient: bool = False, status: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.transient = transient
        self.status = status


class ValidationError(CrawlerError):
    """Image fetched fine but does not meet the run's criteria. Not a failure."""

    stage = "validation"

    def __init__(self, reason: str, **kwargs):
        super().__init__(reason, **kwargs)
        self.reason = reason
