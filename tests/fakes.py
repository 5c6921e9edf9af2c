"""In-memory stand-ins for the browser page and the image fetcher."""

import asyncio
import io
from typing import Dict, List, Optional

from PIL import Image
from playwright.async_api import Error as PlaywrightError

from image_crawler.descriptors import parse_descriptor
from image_crawler.errors import DownloadError


class FakeElement:
    def __init__(self, attrs=None, children=None, on_click=None):
        self.attrs = dict(attrs or {})
        self.children = dict(children or {})
        self.on_click = on_click
        self.clicks = 0

    def __repr__(self):
        return f"FakeElement({self.attrs})"


def img(src, **attrs):
    return FakeElement({"src": src, **attrs})


class FakeSession:
    """Mimics BrowserSession over a dict DOM: selector -> elements.

    ``growth`` batches are appended to the results page one per scroll step or
    per click on a selector in ``controls``; a control stays visible while
    batches remain. Overlapping commands are counted in ``overlaps``.
    """

    def __init__(self, results=None, growth=None, detail_pages=None, visible=(), controls=(),
                 fail_navigation=0):
        self.results: Dict[str, List[FakeElement]] = {k: list(v) for k, v in (results or {}).items()}
        self.growth = list(growth or [])
        self.detail_pages = detail_pages or {}
        self.visible = set(visible)
        self.controls = set(controls)
        self.fail_navigation = fail_navigation
        self.dom = self.results
        self.current_url = "about:blank"
        self.calls: List[tuple] = []
        self.overlaps = 0
        self._busy = False

    async def _cmd(self, *call):
        if self._busy:
            self.overlaps += 1
        self._busy = True
        self.calls.append(call)
        await asyncio.sleep(0)
        self._busy = False

    def names(self):
        return [c[0] for c in self.calls]

    def _grow(self):
        if self.growth:
            for selector, elements in self.growth.pop(0).items():
                self.results.setdefault(selector, []).extend(elements)

    def _match(self, selector) -> List[FakeElement]:
        if selector in self.dom:
            return list(self.dom[selector])
        found = []
        for part in selector.split(","):
            found.extend(self.dom.get(part.strip(), []))
        return found

    async def navigate(self, url, wait_until="domcontentloaded", timeout=30000):
        await self._cmd("navigate", url)
        if self.fail_navigation:
            self.fail_navigation -= 1
            raise PlaywrightError("net::ERR_CONNECTION_RESET")
        self.current_url = url
        self.dom = self.detail_pages.get(url, self.results)

    async def evaluate(self, script, arg=None):
        await self._cmd("evaluate", script)

    async def scroll_to_end(self):
        await self._cmd("scroll")
        self._grow()
        return 1000

    async def scroll_by_viewport(self, ratio):
        await self._cmd("scroll", ratio)
        self._grow()
        return 500

    async def wait(self, ms):
        await self._cmd("wait", ms)

    async def count(self, selector):
        await self._cmd("count", selector)
        return len(self._match(selector))

    async def query_all(self, selector):
        await self._cmd("query_all", selector)
        return self._match(selector)

    async def query(self, selector):
        await self._cmd("query", selector)
        found = self._match(selector)
        return found[0] if found else None

    async def wait_visible(self, selector, timeout):
        await self._cmd("wait_visible", selector)
        found = self._match(selector)
        return found[0] if found else None

    async def is_visible(self, selector, timeout=1500):
        await self._cmd("is_visible", selector)
        if selector in self.controls:
            return bool(self.growth)
        return selector in self.visible or bool(self._match(selector))

    async def wait_for_count_above(self, selector, count, timeout):
        await self._cmd("wait_for_count_above", selector)
        return len(self._match(selector)) > count

    async def click(self, target, timeout=5000):
        await self._cmd("click", target)
        if isinstance(target, FakeElement):
            target.clicks += 1
            if target.on_click:
                target.on_click(self)
        elif target in self.controls:
            self._grow()

    async def press(self, key):
        await self._cmd("press", key)

    async def read_attribute(self, element, name):
        await self._cmd("read_attribute", name)
        return element.attrs.get(name)

    async def query_in(self, element, selector):
        await self._cmd("query_in", selector)
        return element.children.get(selector)


class FakeFetcher:
    def __init__(self, responses: Dict[str, object], delay: float = 0):
        self.responses = responses
        self.delay = delay
        self.calls: List[str] = []
        self.headers: Dict[str, Optional[dict]] = {}

    async def fetch(self, url, headers=None):
        self.calls.append(url)
        self.headers[url] = headers
        if self.delay:
            await asyncio.sleep(self.delay)
        value = self.responses.get(url)
        if value is None:
            raise DownloadError("HTTP 404", status=404, url=url)
        if isinstance(value, Exception):
            raise value
        return value


def make_image(width=64, height=48, color=(200, 30, 30), fmt="PNG") -> bytes:
    out = io.BytesIO()
    Image.new("RGB", (width, height), color).save(out, fmt)
    return out.getvalue()


def distinct_images(count, width=64, height=48, fmt="PNG") -> List[bytes]:
    return [make_image(width, height, (i * 7 % 256, i * 13 % 256, 90), fmt) for i in range(count)]


def make_descriptor(name="Example", key: Optional[str] = None, **fields):
    data = {
        "name": name,
        "searchUrl": "https://img.example/search?q={query}",
        "selectors": {"images": "img.result"},
        "scrolling": {"strategy": "none"},
        "imageExtraction": {"type": "attribute", "attributes": ["src"]},
        "fullSizeActions": {"type": "direct"},
    }
    data.update(fields)
    return parse_descriptor(data, key)
