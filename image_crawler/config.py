"""Run options, browser options and logging setup."""

from __future__ import annotations

import json
import logging
import math
import re
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

from image_crawler.errors import ConfigError

logger = logging.getLogger("image_crawler.config")

DEFAULT_FILE_TYPES = ("jpg", "jpeg", "png", "gif", "webp")
DEFAULT_OUTPUT_DIR = Path("downloads")
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_SIZE_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([KMG]?B?)?\s*$", re.IGNORECASE)
_SIZE_UNITS = {"": 1, "B": 1, "K": 1024, "KB": 1024, "M": 1024**2, "MB": 1024**2, "G": 1024**3, "GB": 1024**3}

# Legacy config.json keys -> option field names
_ALIASES = {
    "maxDownloads": "max_results",
    "maxResults": "max_results",
    "minWidth": "min_width",
    "minHeight": "min_height",
    "minFileSize": "min_file_size",
    "fileTypes": "file_types",
    "outputDir": "output_dir",
    "safeSearch": "safe_search",
    "timeBudget": "time_budget",
}


def parse_size(value: Any) -> int:
    """'50KB' -> 51200. Plain numbers are bytes."""
    if value is None:
        return 0
    if isinstance(value, (int, float)):
        return int(value)
    m = _SIZE_RE.match(str(value))
    if not m:
        raise ConfigError(f"Invalid size value: {value!r}")
    number, unit = m.groups()
    return int(float(number) * _SIZE_UNITS[(unit or "").upper()])


@dataclass
class CrawlOptions:
    """Per-run budgets and acceptance criteria."""

    max_results: int = 100
    min_width: int = 640
    min_height: int = 480
    min_file_size: int = 50 * 1024
    file_types: Tuple[str, ...] = DEFAULT_FILE_TYPES
    concurrency: int = 5
    time_budget: Optional[float] = None  # seconds
    output_dir: Path = DEFAULT_OUTPUT_DIR
    safe_search: bool = True
    # how many candidates to collect per wanted result before scrolling stops
    overfetch: float = 2.0
    output_format: Optional[str] = None
    quality: int = 90
    download_timeout: float = 20.0
    download_attempts: int = 2
    backoff_base: float = 0.5

    def __post_init__(self):
        self.output_dir = Path(self.output_dir)
        self.file_types = tuple(t.lower().lstrip(".") for t in self.file_types)
        self.min_file_size = parse_size(self.min_file_size)
        problems = []
        if self.max_results <= 0:
            problems.append("max_results must be positive")
        if self.concurrency <= 0:
            problems.append("concurrency must be positive")
        if self.min_width < 0 or self.min_height < 0:
            problems.append("minimum dimensions cannot be negative")
        if self.overfetch < 1:
            problems.append("overfetch must be >= 1")
        if self.download_attempts < 1:
            problems.append("download_attempts must be >= 1")
        if self.time_budget is not None and self.time_budget <= 0:
            problems.append("time_budget must be positive")
        if problems:
            raise ConfigError("Invalid crawl options", problems=problems)

    @property
    def candidate_cap(self) -> int:
        return max(self.max_results, math.ceil(self.max_results * self.overfetch))

    def search_options(self) -> Dict[str, Any]:
        """Options visible to a descriptor's searchParamsConfig placeholders."""
        return {"safeSearch": self.safe_search}

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], **overrides) -> "CrawlOptions":
        known = {f.name for f in fields(cls)}
        values: Dict[str, Any] = {}
        for key, value in data.items():
            name = _ALIASES.get(key, key)
            if name in known:
                values[name] = value
            else:
                logger.debug("Ignoring unknown option %r", key)
        if "file_types" in values:
            values["file_types"] = tuple(values["file_types"])
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


@dataclass
class BrowserOptions:
    headless: bool = True
    storage_state: Optional[str] = None
    user_agent: Optional[str] = None
    viewport: Dict[str, int] = field(default_factory=lambda: {"width": 1366, "height": 900})


def load_options(path: Optional[Path], **overrides) -> CrawlOptions:
    """Read a JSON config file (if any) and apply CLI overrides on top."""
    data: Dict[str, Any] = {}
    if path is not None:
        path = Path(path)
        if path.exists():
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
            except ValueError as exc:
                raise ConfigError(f"Config file {path} is not valid JSON: {exc}") from exc
            logger.debug("Loaded options from %s", path)
        else:
            logger.info("Config file %s not found, using defaults", path)
    return CrawlOptions.from_mapping(data, **overrides)


def configure_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    root = logging.getLogger("image_crawler")
    root.setLevel(level)
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
    for handler in root.handlers:
        handler.setLevel(level)
