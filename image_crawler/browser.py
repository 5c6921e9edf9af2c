import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, List, Optional, Union

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import ElementHandle, Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from image_crawler.config import BrowserOptions

logger = logging.getLogger("image_crawler.browser")


CHROME_ARGS = [
    "--disable-blink-features=AutomationControlled",
    # Keeps navigator.webdriver from being set, which some result pages check.

    "--no-sandbox",
    # Required inside Docker/CI where the Chromium sandbox cannot start.

    "--disable-dev-shm-usage",
    # /dev/shm is tiny in containers; Chromium crashes without this.
]


UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/133.0.0.0 Safari/537.36"
)
# Desktop Chrome UA. Playwright's default UA advertises HeadlessChrome.

SCROLL_TO_END = "() => { window.scrollTo(0, document.body.scrollHeight); return document.body.scrollHeight; }"
SCROLL_BY_VIEWPORT = "(ratio) => { const y = Math.max(200, Math.floor((window.innerHeight || 900) * ratio)); window.scrollBy(0, y); return y; }"
COUNT_ABOVE = "([selector, count]) => document.querySelectorAll(selector).length > count"


async def open_page(options: Optional[BrowserOptions] = None):
    """
    Starts Playwright and a Chromium browser, then opens one page in a fresh
    context configured from ``options`` (headless flag, storage state, user
    agent, viewport). Returns all four objects so ``close_page`` can tear
    them down.

    Returns:
        pw: Playwright instance
        browser: Chromium browser object
        context: Browser context (cookies, localStorage, session)
        page: Actual browser tab for navigation and scraping
    """
    options = options or BrowserOptions()

    pw = await async_playwright().start()
    browser = await pw.chromium.launch(headless=options.headless, args=CHROME_ARGS)

    context = await browser.new_context(
        storage_state=options.storage_state if options.storage_state else None,
        # Saved cookies/localStorage for sites that show more to logged-in users.

        user_agent=options.user_agent or UA,

        viewport=options.viewport,
        # Many result grids switch to a mobile DOM below ~800px, which breaks selectors.
    )

    page = await context.new_page()
    return pw, browser, context, page


async def close_page(pw, browser, context):
    """
    Properly closes Playwright resources.
    This prevents zombie browser processes and the Node driver from lingering.
    """
    await context.close()
    await browser.close()
    await pw.stop()


class BrowserSession:
    """The run's only handle on the browser page.

    Every command goes through ``_lock``, so a second navigation, scroll or
    element read can never be issued while the previous one is still
    outstanding. The coordinator owns the session for the whole run and passes
    it explicitly to the stages that need it.
    """

    def __init__(self, page: Page):
        self.page = page
        self._lock = asyncio.Lock()

    @property
    def current_url(self) -> str:
        return self.page.url

    async def navigate(self, url: str, wait_until: str = "domcontentloaded", timeout: int = 30000):
        async with self._lock:
            logger.debug("goto %s (wait_until=%s)", url, wait_until)
            return await self.page.goto(url, wait_until=wait_until, timeout=timeout)

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        async with self._lock:
            return await self.page.evaluate(script, arg)

    async def scroll_to_end(self) -> int:
        return await self.evaluate(SCROLL_TO_END)

    async def scroll_by_viewport(self, ratio: float) -> int:
        return await self.evaluate(SCROLL_BY_VIEWPORT, ratio)

    async def wait(self, ms: int) -> None:
        async with self._lock:
            await self.page.wait_for_timeout(ms)

    async def count(self, selector: str) -> int:
        async with self._lock:
            return await self.page.locator(selector).count()

    async def query_all(self, selector: str) -> List[ElementHandle]:
        async with self._lock:
            return await self.page.query_selector_all(selector)

    async def query(self, selector: str) -> Optional[ElementHandle]:
        async with self._lock:
            return await self.page.query_selector(selector)

    async def wait_visible(self, selector: str, timeout: int) -> Optional[ElementHandle]:
        """First element matching ``selector`` once visible, or None after ``timeout`` ms."""
        async with self._lock:
            loc = self.page.locator(selector).first
            try:
                await loc.wait_for(state="visible", timeout=timeout)
            except PlaywrightTimeoutError:
                return None
            return await loc.element_handle()

    async def is_visible(self, selector: str, timeout: int = 1500) -> bool:
        return await self.wait_visible(selector, timeout) is not None

    async def wait_for_count_above(self, selector: str, count: int, timeout: int) -> bool:
        async with self._lock:
            try:
                await self.page.wait_for_function(COUNT_ABOVE, arg=[selector, count], timeout=timeout)
                return True
            except PlaywrightTimeoutError:
                return False

    async def click(self, target: Union[str, ElementHandle], timeout: int = 5000) -> None:
        async with self._lock:
            if isinstance(target, str):
                await self.page.locator(target).first.click(timeout=timeout)
            else:
                await target.click(timeout=timeout)

    async def press(self, key: str) -> None:
        async with self._lock:
            await self.page.keyboard.press(key)

    async def read_attribute(self, element: ElementHandle, name: str) -> Optional[str]:
        async with self._lock:
            return await element.get_attribute(name)

    async def query_in(self, element: ElementHandle, selector: str) -> Optional[ElementHandle]:
        async with self._lock:
            return await element.query_selector(selector)


async def save_session(url: str, path: str, confirm=input) -> str:
    """
    Opens a headed browser for a manual login and saves the authentication
    state (cookies, localStorage) to ``path``. Pass the file back as
    ``BrowserOptions.storage_state`` so result pages render as for a
    logged-in user.
    """
    pw, browser, context, page = await open_page(BrowserOptions(headless=False))
    try:
        await page.goto(url, wait_until="domcontentloaded")
        # Blocking prompt; the user logs in inside the browser window meanwhile
        await asyncio.to_thread(confirm, "Log in in the browser window, then press Enter here... ")
        await context.storage_state(path=path)
        logger.info("Session saved to %s", path)
        return path
    finally:
        await close_page(pw, browser, context)


@asynccontextmanager
async def open_session(options: Optional[BrowserOptions] = None) -> AsyncIterator[BrowserSession]:
    pw, browser, context, page = await open_page(options)
    try:
        yield BrowserSession(page)
    finally:
        try:
            await close_page(pw, browser, context)
        except PlaywrightError as exc:
            logger.warning("Error while closing browser: %s", exc)
