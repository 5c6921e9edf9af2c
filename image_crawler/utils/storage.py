"""Writes accepted images to the destination directory."""

import asyncio
import logging
import os
import re
import uuid
from pathlib import Path
from typing import Optional, Set
from urllib.parse import unquote, urlsplit

import aiofiles
import aiofiles.os

logger = logging.getLogger("image_crawler.storage")


def sanitize_filename(candidate: str) -> str:
    """Collapse disallowed filename characters so downloads are filesystem safe."""
    collapsed = re.sub(r"[^\w.\-]+", "_", candidate.strip()).strip("._")
    if not collapsed:
        return "image"
    return collapsed[:120]


def filename_from_url(url: str, fallback: str = "image") -> str:
    """Stem of the last path segment: https://x/a/b/photo.jpg?w=1 -> photo."""
    name = unquote(os.path.basename(urlsplit(url).path))
    stem = os.path.splitext(name)[0]
    return sanitize_filename(stem or fallback)


class FileStorage:
    """Persistence collaborator: bytes + relative name -> final path.

    Writes go to a temporary file next to the target and are moved into place
    with ``os.replace``, so a cancelled write never leaves a partial image
    under its final name. Names are claimed under a lock and held in memory
    until the write lands, so two workers never pick the same path and no
    empty placeholder file is ever created.
    """

    def __init__(self, root: Path):
        self.root = Path(root)
        self._lock = asyncio.Lock()
        self._reserved: Set[Path] = set()

    async def _claim(self, directory: Path, stem: str, ext: str) -> Path:
        async with self._lock:
            await aiofiles.os.makedirs(directory, exist_ok=True)
            path = directory / f"{stem}.{ext}"
            counter = 1
            while path.exists() or path in self._reserved:
                path = directory / f"{stem}_{counter}.{ext}"
                counter += 1
            self._reserved.add(path)
            return path

    async def save(self, data: bytes, name: str, ext: str, subdir: Optional[str] = None) -> Path:
        directory = self.root / subdir if subdir else self.root
        path = await self._claim(directory, sanitize_filename(name), ext.lower().lstrip("."))
        tmp = path.with_name(f".{path.name}.{uuid.uuid4().hex[:8]}.part")
        try:
            async with aiofiles.open(tmp, "wb") as f:
                await f.write(data)
            await aiofiles.os.replace(tmp, path)
        except BaseException:
            # also on CancelledError
            try:
                os.unlink(tmp)
            except FileNotFoundError:
                pass
            raise
        finally:
            self._reserved.discard(path)
        logger.debug("saved %s (%d bytes)", path, len(data))
        return path
