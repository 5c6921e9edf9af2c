"""Search for API-mode providers.

An API-mode descriptor has no results page: its ``searchUrl`` is a JSON
endpoint and its ``api`` block says where the results sit and how each one
yields an image URL. Requests go through the run's fetcher, so they share the
download session, its timeout and its retry policy. The URLs found are
already full size and go straight to the download pipeline.
"""

import json
import logging
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, Tuple
from urllib.parse import urlencode

from image_crawler.adapters.base import CandidateItem, CrawlRun
from image_crawler.descriptors import ApiSearch, ProviderDescriptor
from image_crawler.errors import DownloadError, NavigationError
from image_crawler.extraction import json_path
from image_crawler.search import build_search_url
from image_crawler.utils.urls import is_http_url, normalize_url

logger = logging.getLogger("image_crawler.api")

MAX_API_PAGES = 50


def _with_params(url: str, params: List[Tuple[str, str]]) -> str:
    if not params:
        return url
    sep = "&" if "?" in url else "?"
    return f"{url}{sep}{urlencode(params)}"


def build_api_request(
    descriptor: ProviderDescriptor,
    query: str,
    options: Optional[Mapping[str, Any]] = None,
    api_key: Optional[str] = None,
    per_page: Optional[int] = None,
    page: int = 1,
) -> Tuple[str, Dict[str, str], str]:
    """Request URL, extra headers, and the URL as it may be logged (no key)."""
    api = descriptor.api
    url = build_search_url(descriptor, query, options)
    params = []
    if api.per_page_param and per_page:
        params.append((api.per_page_param, str(per_page)))
    if api.page_param:
        params.append((api.page_param, str(page)))
    shown = _with_params(url, params)

    headers = {"Accept": "application/json"}
    if api_key and api.key_param:
        params.append((api.key_param, api_key))
    elif api_key and api.key_header:
        headers[api.key_header] = api_key
    return _with_params(url, params), headers, shown


def api_results(data: Any, api: ApiSearch) -> List[Any]:
    results = json_path(data, api.results_path)
    if isinstance(results, dict):
        # MediaWiki-style: results keyed by page id
        return list(results.values())
    return results if isinstance(results, list) else []


def result_url(result: Any, api: ApiSearch) -> Optional[str]:
    if api.url_path:
        url = json_path(result, api.url_path)
        return url if isinstance(url, str) else None
    if not isinstance(result, dict):
        return None
    try:
        return api.url_template.format_map(result)
    except (KeyError, IndexError, AttributeError, ValueError) as exc:
        logger.debug("result does not fit %s: %s", api.url_template, exc)
        return None


def api_candidates(results: List[Any], descriptor: ProviderDescriptor, run: CrawlRun) -> List[CandidateItem]:
    api = descriptor.api
    found: List[CandidateItem] = []
    for result in results:
        url = result_url(result, api)
        if not is_http_url(url):
            continue
        candidate_id = normalize_url(url)
        if not run.claim(candidate_id):
            continue
        title = json_path(result, api.title_path) if api.title_path else None
        found.append(CandidateItem(
            id=candidate_id,
            provider=descriptor.name,
            order=run.counters.found - 1,
            thumbnail_url=url,
            title=title if isinstance(title, str) else None,
        ))
    return found


async def fetch_json(fetcher, descriptor: ProviderDescriptor, url: str, headers: Dict[str, str], shown: str):
    try:
        body = await fetcher.fetch(url, headers=headers)
    except DownloadError as exc:
        raise NavigationError(f"API request failed: {exc.message}", provider=descriptor.name, url=shown) from exc
    try:
        return json.loads(body)
    except ValueError as exc:
        raise NavigationError("API response is not valid JSON", provider=descriptor.name, url=shown) from exc


async def search_api(
    fetcher,
    descriptor: ProviderDescriptor,
    query: str,
    run: CrawlRun,
    api_key: Optional[str] = None,
    options: Optional[Mapping[str, Any]] = None,
) -> AsyncIterator[List[CandidateItem]]:
    """Yield one batch of new candidates per results page.

    Paging stops once the run has enough candidates, when a page comes back
    short or brings nothing new, or right away if the descriptor declares no
    ``pageParam``.
    """
    api = descriptor.api
    per_page = min(run.options.candidate_cap, api.max_per_page)
    for page in range(1, MAX_API_PAGES + 1):
        if run.should_stop() or run.collected_enough():
            return
        url, headers, shown = build_api_request(descriptor, query, options, api_key, per_page, page)
        logger.info("[%s] API search: %s", descriptor.name, shown)
        results = api_results(await fetch_json(fetcher, descriptor, url, headers, shown), api)
        batch = api_candidates(results, descriptor, run)
        logger.info("[%s] %d results, %d new candidates (total %d)",
                    descriptor.name, len(results), len(batch), run.counters.found)
        yield batch
        if not api.page_param or not batch or len(results) < per_page:
            return
