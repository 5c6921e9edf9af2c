"""Search navigation: URL building, page load with retries, consent dismissal."""

import asyncio
import logging
from typing import Any, Mapping, Optional
from urllib.parse import quote

from playwright.async_api import Error as PlaywrightError

from image_crawler.descriptors import QUERY_TRANSFORMATIONS, ProviderDescriptor
from image_crawler.errors import ConfigError, NavigationError

logger = logging.getLogger("image_crawler.search")

NAVIGATION_ATTEMPTS = 2
NAVIGATION_RETRY_DELAY = 1.0
CONSENT_TIMEOUT = 1500
CONSENT_SETTLE_MS = 1000


def transform_query(descriptor: ProviderDescriptor, query: str) -> str:
    for name in descriptor.query_transformations:
        query = QUERY_TRANSFORMATIONS[name](query)
    return query


def build_search_url(
    descriptor: ProviderDescriptor, query: str, options: Optional[Mapping[str, Any]] = None
) -> str:
    """Fill ``{query}`` and every searchParamsConfig placeholder of the template."""
    if not descriptor.search_url:
        raise ConfigError("Descriptor has no searchUrl", provider=descriptor.name, stage="search")
    options = options or {}
    url = descriptor.search_url.replace("{query}", quote(transform_query(descriptor, query), safe=""))

    for param in descriptor.search_params:
        if param.option not in options:
            continue
        value = param.on_value if options[param.option] else param.off_value
        if param.placeholder in url:
            url = url.replace(param.placeholder, quote(value, safe=""))
        else:
            sep = "&" if "?" in url else "?"
            url = f"{url}{sep}{quote(param.param_name, safe='')}={quote(value, safe='')}"
    return url


async def navigate(session, descriptor: ProviderDescriptor, url: str,
                   wait_until: Optional[str] = None, timeout: Optional[int] = None,
                   attempts: int = NAVIGATION_ATTEMPTS) -> None:
    """Load ``url``, retrying a fixed number of times before giving up."""
    last_error: Optional[Exception] = None
    for attempt in range(1, attempts + 1):
        try:
            await session.navigate(
                url,
                wait_until=wait_until or descriptor.navigation_wait_until,
                timeout=timeout or descriptor.navigation_timeout,
            )
            return
        except PlaywrightError as exc:  # TimeoutError is a subclass
            last_error = exc
            logger.warning("[%s] navigation attempt %d/%d failed: %s", descriptor.name, attempt, attempts, exc)
            if attempt < attempts:
                await asyncio.sleep(NAVIGATION_RETRY_DELAY * attempt)
    raise NavigationError(
        f"Could not load page after {attempts} attempts: {last_error}",
        provider=descriptor.name,
        url=url,
    )


async def dismiss_consent(session, descriptor: ProviderDescriptor, timeout: int = CONSENT_TIMEOUT) -> bool:
    """Click the first visible consent button, if any. Never raises for a missing one."""
    for selector in descriptor.selectors.consent_buttons:
        try:
            if not await session.is_visible(selector, timeout):
                continue
            logger.info("[%s] consent button %r found, clicking", descriptor.name, selector)
            await session.click(selector, timeout=timeout * 2)
            await session.wait(CONSENT_SETTLE_MS)
            return True
        except PlaywrightError as exc:
            logger.debug("[%s] consent selector %r failed: %s", descriptor.name, selector, exc)
    return False


async def open_search(session, descriptor: ProviderDescriptor, query: str,
                      options: Optional[Mapping[str, Any]] = None) -> str:
    """Navigate to the search results for ``query`` and clear consent prompts."""
    url = build_search_url(descriptor, query, options)
    logger.info("[%s] searching %r -> %s", descriptor.name, query, url)
    await navigate(session, descriptor, url)
    await dismiss_consent(session, descriptor)
    return url
