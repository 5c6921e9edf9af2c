"""Turns the current results page into ``CandidateItem``s.

One extractor per ``imageExtraction.type``, chosen from the descriptor's
variant class. Each extractor reads a single matched element; the dispatcher
owns selector matching, URL absolutizing, filters and the run-wide dedup.
"""

import json
import logging
from typing import Awaitable, Callable, Dict, List, Optional, Tuple, Type

from playwright.async_api import Error as PlaywrightError

from image_crawler.adapters.base import CandidateItem, CrawlRun
from image_crawler.descriptors import (
    AttributeCollection,
    AttributeExtraction,
    JsonAttributeExtraction,
    LinkCollection,
    NestedRead,
    ProviderDescriptor,
)
from image_crawler.errors import ExtractionError
from image_crawler.utils.urls import absolutize, is_http_url, largest_from_srcset, normalize_url, passes_filters

logger = logging.getLogger("image_crawler.extraction")

# (thumbnail, detail_url, title)
Extracted = Tuple[Optional[str], Optional[str], Optional[str]]


async def first_attribute(session, element, attributes) -> Optional[str]:
    """First non-empty, non ``data:`` value among ``attributes``; srcset yields its largest entry."""
    for attr in attributes:
        value = await session.read_attribute(element, attr)
        if not value or not value.strip():
            continue
        value = value.strip()
        if attr.lower().endswith("srcset"):
            value = largest_from_srcset(value)
        if value and not value.startswith("data:"):
            return value
    return None


async def nested_attribute(session, element, read: NestedRead) -> Optional[str]:
    child = await session.query_in(element, read.selector)
    if child is None:
        return None
    return await first_attribute(session, child, read.attributes)


def json_path(data, path: str):
    """Dotted lookup; a numeric segment indexes into a list (``imageinfo.0.url``)."""
    for key in path.split("."):
        if isinstance(data, dict) and key in data:
            data = data[key]
        elif isinstance(data, list) and key.isdigit() and int(key) < len(data):
            data = data[int(key)]
        else:
            return None
    return data


async def _attribute(session, element, strategy: AttributeExtraction) -> Extracted:
    return await first_attribute(session, element, strategy.attributes), None, None


async def _link(session, element, strategy: LinkCollection) -> Extracted:
    href = await first_attribute(session, element, ("href",))
    if href and strategy.base_url:
        href = absolutize(href, strategy.base_url)
    return None, href, None


async def _json_attribute(session, element, strategy: JsonAttributeExtraction) -> Extracted:
    raw = await session.read_attribute(element, strategy.attribute)
    url = None
    if raw:
        try:
            value = json_path(json.loads(raw), strategy.json_path)
            url = value if isinstance(value, str) and value else None
        except ValueError as exc:
            logger.debug("Bad JSON in %s attribute: %s", strategy.attribute, exc)
    if url is None and strategy.fallback is not None:
        url = await nested_attribute(session, element, strategy.fallback)
    if url is None:
        raise ExtractionError(f"No {strategy.json_path!r} in {strategy.attribute!r} and no fallback value")
    return url, None, None


async def _attribute_collection(session, element, strategy: AttributeCollection) -> Extracted:
    href = await first_attribute(session, element, (strategy.link_attribute,))
    if href and strategy.base_url:
        href = absolutize(href, strategy.base_url)
    thumb = await nested_attribute(session, element, strategy.thumbnail) if strategy.thumbnail else None
    title = None
    if strategy.title:
        child = await session.query_in(element, strategy.title.selector)
        if child is not None:
            title = await first_attribute(session, child, strategy.title.attributes)
    return thumb, href, title


EXTRACTORS: Dict[Type, Callable[..., Awaitable[Extracted]]] = {
    AttributeExtraction: _attribute,
    LinkCollection: _link,
    JsonAttributeExtraction: _json_attribute,
    AttributeCollection: _attribute_collection,
}


async def extract_candidates(session, descriptor: ProviderDescriptor, run: CrawlRun) -> List[CandidateItem]:
    """One extraction pass: every new, filtered, deduplicated candidate on the page."""
    strategy = descriptor.extraction
    extractor = EXTRACTORS[type(strategy)]
    page_url = session.current_url
    found: List[CandidateItem] = []

    elements = await session.query_all(descriptor.main_selector)
    logger.debug("[%s] %d elements match %s", descriptor.name, len(elements), descriptor.main_selector)

    for element in elements:
        try:
            thumb, detail, title = await extractor(session, element, strategy)
        except ExtractionError as exc:
            logger.debug("[%s] element dropped: %s", descriptor.name, exc)
            continue
        except PlaywrightError as exc:
            logger.debug("[%s] element detached while reading: %s", descriptor.name, exc)
            continue

        thumb = absolutize(thumb, page_url) if thumb else None
        detail = absolutize(detail, page_url) if detail else None
        key_url = detail or thumb
        if not is_http_url(key_url):
            continue
        if not passes_filters(key_url, strategy.filters):
            continue

        candidate_id = normalize_url(key_url)
        if not run.claim(candidate_id):
            continue
        found.append(CandidateItem(
            id=candidate_id,
            provider=descriptor.name,
            order=run.counters.found - 1,
            thumbnail_url=thumb,
            detail_url=detail,
            title=title,
            element=element,
        ))

    if found:
        logger.info("[%s] %d new candidates (total %d)", descriptor.name, len(found), run.counters.found)
    return found
