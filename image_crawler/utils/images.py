"""Pillow-backed image inspection and re-encoding."""

import io
import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from PIL import Image, UnidentifiedImageError

from image_crawler.errors import ValidationError

logger = logging.getLogger("image_crawler.images")

# Pillow format name -> file extension
_EXTENSIONS = {
    "JPEG": "jpg",
    "MPO": "jpg",
    "PNG": "png",
    "GIF": "gif",
    "WEBP": "webp",
    "BMP": "bmp",
    "TIFF": "tiff",
}
_SAVE_FORMATS = {"jpg": "JPEG", "jpeg": "JPEG", "png": "PNG", "webp": "WEBP", "gif": "GIF"}
_EQUIVALENT = {"jpeg": "jpg", "tif": "tiff"}


@dataclass(frozen=True)
class ImageInfo:
    width: int
    height: int
    format: str                                    # normalized extension: jpg, png, gif, webp, ...


def normalize_format(name: str) -> str:
    name = name.lower().lstrip(".")
    return _EQUIVALENT.get(name, name)


class ImageInspector:
    """bytes -> ImageInfo, plus the acceptance checks a run applies to it."""

    def inspect(self, data: bytes) -> ImageInfo:
        try:
            with Image.open(io.BytesIO(data)) as image:
                width, height = image.size
                fmt = image.format or ""
        except (UnidentifiedImageError, OSError) as exc:
            raise ValidationError("not an image") from exc
        return ImageInfo(width, height, _EXTENSIONS.get(fmt, fmt.lower()))

    def check(self, info: ImageInfo, min_width: int, min_height: int, file_types: Iterable[str]) -> None:
        allowed = {normalize_format(t) for t in file_types}
        if allowed and normalize_format(info.format) not in allowed:
            raise ValidationError("format not allowed")
        if info.width < min_width or info.height < min_height:
            raise ValidationError("too small")

    def reencode(self, data: bytes, target: str, quality: int = 90) -> bytes:
        """Re-encode to ``target`` (jpg/png/webp/gif). Transparency is flattened onto white for JPEG."""
        fmt = _SAVE_FORMATS.get(target.lower())
        if fmt is None:
            raise ValueError(f"Unsupported output format: {target}")
        with Image.open(io.BytesIO(data)) as image:
            if fmt == "JPEG":
                if image.mode in ("RGBA", "LA") or (image.mode == "P" and "transparency" in image.info):
                    image = image.convert("RGBA")
                    background = Image.new("RGB", image.size, (255, 255, 255))
                    background.paste(image, mask=image.getchannel("A"))
                    image = background
                elif image.mode != "RGB":
                    image = image.convert("RGB")
            out = io.BytesIO()
            save_kwargs = {"quality": max(1, min(quality, 100))} if fmt in ("JPEG", "WEBP") else {}
            image.save(out, fmt, **save_kwargs)
        return out.getvalue()


def extension_for(info: ImageInfo, output_format: Optional[str] = None) -> str:
    return normalize_format(output_format) if output_format else info.format or "jpg"
