"""Full-size resolution: candidate reference -> final downloadable URL.

Each ``fullSizeActions.type`` maps to one resolver. ``direct``,
``url_param_decode`` and ``url_cleaning`` are pure URL work; ``lightbox`` and
``detail_page`` drive the shared browser session and so run on the browser
side of the crawl, one at a time.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Type

from playwright.async_api import Error as PlaywrightError

from image_crawler.adapters.base import CandidateItem
from image_crawler.descriptors import (
    DetailPage,
    Direct,
    FullSizeStrategy,
    Lightbox,
    ProviderDescriptor,
    UrlCleaning,
    UrlParamDecode,
)
from image_crawler.errors import NavigationError, ResolutionError
from image_crawler.extraction import first_attribute
from image_crawler.search import navigate
from image_crawler.utils.urls import absolutize, is_http_url, largest_from_srcset, query_param, strip_params

logger = logging.getLogger("image_crawler.resolver")

# Upper bound for the pure resolvers; the browser ones carry their own timeouts.
PURE_TIMEOUT = 5.0


async def _direct(session, candidate: CandidateItem, action: Direct, descriptor) -> str:
    return candidate.reference


async def _url_cleaning(session, candidate: CandidateItem, action: UrlCleaning, descriptor) -> str:
    return strip_params(candidate.reference, action.remove_params)


async def _url_param_decode(session, candidate: CandidateItem, action: UrlParamDecode, descriptor) -> str:
    value = query_param(candidate.reference, action.param_name, decode=action.decode)
    if not value:
        raise ResolutionError(f"Query parameter {action.param_name!r} not present")
    return value


async def _read_image_url(session, element, attribute: str):
    url = await first_attribute(session, element, (attribute,))
    if not url and attribute != "srcset":
        url = largest_from_srcset(await session.read_attribute(element, "srcset"))
    return url


async def _detail_page(session, candidate: CandidateItem, action: DetailPage, descriptor) -> str:
    if not candidate.detail_url:
        raise ResolutionError("Candidate has no detail page")
    try:
        await navigate(session, descriptor, candidate.detail_url,
                       wait_until=action.navigation_wait_until, timeout=action.navigation_timeout, attempts=1)
    except NavigationError as exc:
        raise ResolutionError(f"Detail page did not load: {exc.message}") from exc

    element = None
    if action.wait_strategy == "locator":
        element = await session.wait_visible(", ".join(action.selectors), action.timeout)
    elif action.wait_strategy == "locator_any":
        for selector in action.selectors:
            element = await session.wait_visible(selector, action.timeout)
            if element is not None:
                break
    else:
        await session.wait(action.wait_delay)
        element = await session.query(", ".join(action.selectors))
    if element is None:
        raise ResolutionError("No full-size image element became visible")

    url = await _read_image_url(session, element, action.attribute)
    if not url:
        raise ResolutionError(f"Full-size element has no {action.attribute!r}")
    return absolutize(url, action.base_url or session.current_url)


async def _lightbox(session, candidate: CandidateItem, action: Lightbox, descriptor) -> str:
    if action.click_target == "self":
        if candidate.element is None:
            raise ResolutionError("Lightbox needs the thumbnail element, which is gone")
        target = candidate.element
    else:
        target = action.click_target
    await session.click(target, timeout=action.timeout)

    element = None
    try:
        if action.wait_strategy == "locator":
            for selector in action.image_selectors:
                element = await session.wait_visible(selector, action.timeout)
                if element is not None:
                    break
        if element is None:
            await session.wait(action.wait_delay)
            element = await session.query(", ".join(action.image_selectors))
        url = await _read_image_url(session, element, "src") if element is not None else None
    finally:
        await session.press("Escape")

    if not url:
        raise ResolutionError("Lightbox image not found")
    return absolutize(url, session.current_url)


RESOLVERS: Dict[Type, Callable[..., Awaitable[str]]] = {
    Direct: _direct,
    UrlCleaning: _url_cleaning,
    UrlParamDecode: _url_param_decode,
    DetailPage: _detail_page,
    Lightbox: _lightbox,
}

# Resolvers that do not touch the browser
PURE = (Direct, UrlCleaning, UrlParamDecode)


def needs_session(action: FullSizeStrategy) -> bool:
    return not isinstance(action, PURE)


def after_scroll(action: FullSizeStrategy) -> bool:
    """detail_page leaves the results page, so it waits until scrolling is over."""
    return isinstance(action, DetailPage)


async def resolve_full_size(session, candidate: CandidateItem, descriptor: ProviderDescriptor) -> str:
    """Final URL for ``candidate``; raises ResolutionError with full context on any failure."""
    action = descriptor.full_size
    resolver = RESOLVERS[type(action)]
    try:
        if needs_session(action):
            url = await resolver(session, candidate, action, descriptor)
        else:
            url = await asyncio.wait_for(resolver(session, candidate, action, descriptor), PURE_TIMEOUT)
    except ResolutionError as exc:
        exc.provider, exc.url = descriptor.name, candidate.reference
        raise
    except (PlaywrightError, asyncio.TimeoutError) as exc:
        raise ResolutionError(
            f"{action.tag} failed: {exc}", provider=descriptor.name, url=candidate.reference
        ) from exc

    if not is_http_url(url):
        raise ResolutionError(f"{action.tag} produced a non-http URL: {url!r}",
                              provider=descriptor.name, url=candidate.reference)
    logger.debug("[%s] %s -> %s", descriptor.name, candidate.reference, url)
    return url
