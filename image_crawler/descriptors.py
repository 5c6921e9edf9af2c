"""Provider descriptor schema.

A descriptor is a plain mapping (loaded from a built-in module or a JSON file)
that tells the engine how to search, paginate, extract and resolve images for
one site. ``parse_descriptor`` turns it into immutable dataclasses, resolving
every ``type``/``strategy`` tag to a concrete variant exactly once. Anything
the engine could only guess at is rejected with a ``ConfigError`` listing all
problems found.

Durations are milliseconds, as in the descriptor files.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

from image_crawler.errors import ConfigError

WAIT_UNTIL_POLICIES = ("load", "domcontentloaded", "networkidle", "commit")

QUERY_TRANSFORMATIONS: Dict[str, Callable[[str], str]] = {
    "toLowerCase": str.lower,
    "spacesToHyphens": lambda q: re.sub(r"\s+", "-", q),
    "trim": str.strip,
}

# Top-level keys the engine ignores but old descriptor files still carry
_LEGACY_KEYS = {"playwrightOptions", "notes", "apiKeyInstructions", "itemProcessing"}
_TOP_LEVEL_KEYS = {
    "name", "searchUrl", "selectors", "scrolling", "imageExtraction", "fullSizeActions",
    "navigationWaitUntil", "navigationTimeout", "queryTransformations", "searchParamsConfig",
    "apiMode", "requiresApiKey", "api", "unverified",
} | _LEGACY_KEYS


# --- scroll strategies -----------------------------------------------------

@dataclass(frozen=True)
class InfiniteScroll:
    tag = "infinite_scroll"
    max_scrolls: int = 10
    scroll_delay: int = 2000
    no_new_images_retries: int = 3
    step_ratio: Optional[float] = None


@dataclass(frozen=True)
class LoadMoreOrScroll:
    tag = "load_more_button_or_scroll"
    max_attempts: int = 15
    scroll_delay: int = 2000
    load_more_timeout: int = 10000
    no_new_images_retries: Optional[int] = None
    step_ratio: Optional[float] = None


@dataclass(frozen=True)
class ManualPaging:
    tag = "manual"
    max_scrolls: int = 10
    scroll_delay: int = 2000


@dataclass(frozen=True)
class NoScroll:
    tag = "none"


ScrollStrategy = Union[InfiniteScroll, LoadMoreOrScroll, ManualPaging, NoScroll]


# --- extraction strategies -------------------------------------------------

@dataclass(frozen=True)
class NestedRead:
    """Read the first non-empty attribute of a child element."""

    selector: str
    attributes: Tuple[str, ...]


@dataclass(frozen=True)
class AttributeExtraction:
    tag = "attribute"
    attributes: Tuple[str, ...] = ("src",)
    filters: Tuple[str, ...] = ()


@dataclass(frozen=True)
class LinkCollection:
    tag = "link_collection"
    base_url: Optional[str] = None
    filters: Tuple[str, ...] = ()


@dataclass(frozen=True)
class JsonAttributeExtraction:
    tag = "json_attribute"
    attribute: str = "m"
    json_path: str = "murl"
    fallback: Optional[NestedRead] = None
    filters: Tuple[str, ...] = ()


@dataclass(frozen=True)
class AttributeCollection:
    tag = "attribute_collection"
    link_attribute: str = "href"
    base_url: Optional[str] = None
    thumbnail: Optional[NestedRead] = None
    title: Optional[NestedRead] = None
    filters: Tuple[str, ...] = ()


ExtractionStrategy = Union[AttributeExtraction, LinkCollection, JsonAttributeExtraction, AttributeCollection]
LINK_EXTRACTIONS = (LinkCollection, AttributeCollection)


# --- full-size strategies --------------------------------------------------

@dataclass(frozen=True)
class Direct:
    tag = "direct"


@dataclass(frozen=True)
class DetailPage:
    tag = "detail_page"
    selectors: Tuple[str, ...] = ()
    attribute: str = "src"
    wait_strategy: str = "locator"
    timeout: int = 7000
    wait_delay: int = 1500
    navigation_wait_until: str = "domcontentloaded"
    navigation_timeout: int = 30000
    base_url: Optional[str] = None


@dataclass(frozen=True)
class Lightbox:
    tag = "lightbox"
    image_selectors: Tuple[str, ...] = ()
    click_target: str = "self"
    wait_strategy: str = "locator"
    timeout: int = 5000
    wait_delay: int = 1000


@dataclass(frozen=True)
class UrlParamDecode:
    tag = "url_param_decode"
    param_name: str = "u"
    decode: bool = True


@dataclass(frozen=True)
class UrlCleaning:
    tag = "url_cleaning"
    remove_params: Tuple[str, ...] = ()


FullSizeStrategy = Union[Direct, DetailPage, Lightbox, UrlParamDecode, UrlCleaning]


# --- API search ------------------------------------------------------------

@dataclass(frozen=True)
class ApiSearch:
    """How an API-mode endpoint returns results and takes its key.

    ``results_path`` points at a list (or an id-keyed object) of results.
    Each result's image URL comes from exactly one of ``url_path``, a dotted
    path inside the result, or ``url_template``, formatted with the result's
    fields.
    """

    results_path: str
    url_path: Optional[str] = None
    url_template: Optional[str] = None
    title_path: Optional[str] = None
    key_param: Optional[str] = None
    key_header: Optional[str] = None
    per_page_param: Optional[str] = None
    page_param: Optional[str] = None
    max_per_page: int = 100


# --- descriptor ------------------------------------------------------------

@dataclass(frozen=True)
class Selectors:
    images: Optional[str] = None
    thumbnails: Optional[str] = None
    image_links: Optional[str] = None
    consent_buttons: Tuple[str, ...] = ()
    load_more_button: Optional[str] = None
    show_more_button: Optional[str] = None
    lightbox_images: Tuple[str, ...] = ()


@dataclass(frozen=True)
class SearchParam:
    """A run option (e.g. ``safeSearch``) rendered into the search URL."""

    option: str
    param_name: str
    on_value: str
    off_value: str

    @property
    def placeholder(self) -> str:
        return "{" + self.option + "Param}"


@dataclass(frozen=True)
class ProviderDescriptor:
    key: str
    name: str
    search_url: Optional[str]
    selectors: Selectors
    scroll: ScrollStrategy
    extraction: Optional[ExtractionStrategy]
    full_size: FullSizeStrategy
    navigation_wait_until: str = "domcontentloaded"
    navigation_timeout: int = 30000
    query_transformations: Tuple[str, ...] = ()
    search_params: Tuple[SearchParam, ...] = ()
    api_mode: bool = False
    requires_api_key: bool = False
    api: Optional[ApiSearch] = None
    api_key_instructions: Optional[str] = field(default=None, compare=False)

    @property
    def main_selector(self) -> Optional[str]:
        """Selector whose matches feed the extraction dispatcher."""
        s = self.selectors
        if isinstance(self.extraction, LINK_EXTRACTIONS):
            return s.image_links or s.thumbnails or s.images
        return s.images or s.thumbnails or s.image_links

    @property
    def credential_env(self) -> str:
        return "IMAGE_CRAWLER_" + re.sub(r"[^A-Z0-9]+", "_", self.key.upper()).strip("_") + "_API_KEY"


def descriptor_key(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "_", name.lower()).strip("_")


class _Block:
    """Typed, strict reads from one mapping of a descriptor."""

    def __init__(self, data: Any, path: str, problems: List[str], allowed=None):
        self.path = path
        self.problems = problems
        if data is None:
            data = {}
        if not isinstance(data, Mapping):
            problems.append(f"{path} must be an object")
            data = {}
        self.data = data
        if allowed is not None:
            for key in data:
                if key not in allowed:
                    problems.append(f"{path}.{key} is not a recognised field")

    def has(self, key: str) -> bool:
        return self.data.get(key) is not None

    def _bad(self, key: str, what: str):
        self.problems.append(f"{self.path}.{key} {what}")

    def text(self, key: str, default: Optional[str] = None, required: bool = False) -> Optional[str]:
        value = self.data.get(key)
        if value is None or (isinstance(value, str) and not value.strip()):
            if required:
                self._bad(key, "is required")
            return default
        if not isinstance(value, str):
            self._bad(key, "must be a string")
            return default
        return value

    def integer(self, key: str, default: Optional[int], minimum: int = 0) -> Optional[int]:
        value = self.data.get(key)
        if value is None:
            return default
        if isinstance(value, bool) or not isinstance(value, int):
            self._bad(key, "must be an integer")
            return default
        if value < minimum:
            self._bad(key, f"must be >= {minimum}")
            return default
        return value

    def number(self, key: str, default: Optional[float]) -> Optional[float]:
        value = self.data.get(key)
        if value is None:
            return default
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
            self._bad(key, "must be a positive number")
            return default
        return float(value)

    def flag(self, key: str, default: bool) -> bool:
        value = self.data.get(key)
        if value is None:
            return default
        if not isinstance(value, bool):
            self._bad(key, "must be true or false")
            return default
        return value

    def str_list(self, key: str) -> Tuple[str, ...]:
        value = self.data.get(key)
        if value is None:
            return ()
        if isinstance(value, str):
            value = [value]
        if not isinstance(value, (list, tuple)) or not all(isinstance(v, str) and v for v in value):
            self._bad(key, "must be a list of non-empty strings")
            return ()
        return tuple(value)

    def choice(self, key: str, choices, default: Optional[str] = None) -> Optional[str]:
        value = self.text(key, default)
        if value is not None and value not in choices:
            self._bad(key, f"has unknown value {value!r} (expected one of {', '.join(choices)})")
            return default
        return value

    def block(self, key: str, allowed=None) -> "_Block":
        return _Block(self.data.get(key), f"{self.path}.{key}", self.problems, allowed)


def _attributes(b: _Block) -> Tuple[str, ...]:
    """Accept the legacy singular ``attribute`` but never both spellings."""
    if b.has("attribute") and b.has("attributes"):
        b.problems.append(f"{b.path} declares both attribute and attributes")
        return ()
    return b.str_list("attributes") or b.str_list("attribute")


def _nested(b: _Block, selector_key: str, attr_key: str) -> Optional[NestedRead]:
    selector, attrs = b.text(selector_key), b.str_list(attr_key)
    if selector is None and not attrs:
        return None
    if selector is None or not attrs:
        b.problems.append(f"{b.path} must declare both {selector_key} and {attr_key}")
        return None
    return NestedRead(selector, attrs)


def _parse_scroll(root: _Block) -> ScrollStrategy:
    if not root.has("scrolling"):
        return NoScroll()
    common = {"strategy", "useAutoScroll", "selectors"}
    raw = root.block("scrolling")
    strategy = raw.choice(
        "strategy", ("infinite_scroll", "load_more_button_or_scroll", "manual", "none"), "infinite_scroll"
    )
    if strategy == "infinite_scroll":
        b = root.block("scrolling", common | {"maxScrolls", "scrollDelay", "noNewImagesRetries", "stepRatio"})
        return InfiniteScroll(
            max_scrolls=b.integer("maxScrolls", 10),
            scroll_delay=b.integer("scrollDelay", 2000),
            no_new_images_retries=b.integer("noNewImagesRetries", 3),
            step_ratio=b.number("stepRatio", None),
        )
    if strategy == "load_more_button_or_scroll":
        b = root.block(
            "scrolling",
            common | {"maxAttempts", "scrollDelay", "loadMoreTimeout", "noNewImagesRetries", "stepRatio"},
        )
        return LoadMoreOrScroll(
            max_attempts=b.integer("maxAttempts", 15),
            scroll_delay=b.integer("scrollDelay", 2000),
            load_more_timeout=b.integer("loadMoreTimeout", 10000),
            no_new_images_retries=b.integer("noNewImagesRetries", None, minimum=1),
            step_ratio=b.number("stepRatio", None),
        )
    if strategy == "manual":
        b = root.block("scrolling", common | {"maxScrolls", "scrollDelay"})
        return ManualPaging(max_scrolls=b.integer("maxScrolls", 10), scroll_delay=b.integer("scrollDelay", 2000))
    root.block("scrolling", common | {"maxScrolls"})
    return NoScroll()


def _parse_extraction(root: _Block) -> Optional[ExtractionStrategy]:
    if not root.has("imageExtraction"):
        root.problems.append("imageExtraction is required in scraping mode")
        return None
    block = root.block("imageExtraction")
    if block.text("type", required=True) is None:
        return None
    kind = block.choice("type", ("attribute", "link_collection", "json_attribute", "attribute_collection"))
    if kind is None:
        return None
    if kind == "attribute":
        b = root.block("imageExtraction", {"type", "attributes", "attribute", "filters"})
        return AttributeExtraction(attributes=_attributes(b) or ("src",), filters=b.str_list("filters"))
    if kind == "link_collection":
        b = root.block("imageExtraction", {"type", "baseUrl", "filters"})
        return LinkCollection(base_url=b.text("baseUrl"), filters=b.str_list("filters"))
    if kind == "json_attribute":
        b = root.block("imageExtraction", {"type", "attribute", "jsonPath", "fallback", "filters"})
        fallback = None
        if b.has("fallback"):
            fb = b.block("fallback", {"type", "selector", "attributes", "attribute"})
            fb.choice("type", ("nested_attribute",), "nested_attribute")
            fallback = NestedRead(fb.text("selector", "img"), _attributes(fb) or ("src",))
        return JsonAttributeExtraction(
            attribute=b.text("attribute", required=True),
            json_path=b.text("jsonPath", required=True),
            fallback=fallback,
            filters=b.str_list("filters"),
        )
    b = root.block(
        "imageExtraction",
        {"type", "baseUrl", "detailPageUrlAttribute", "thumbnailSelector", "thumbnailUrlAttribute",
         "titleSelector", "titleAttribute", "filters"},
    )
    return AttributeCollection(
        link_attribute=b.text("detailPageUrlAttribute", "href"),
        base_url=b.text("baseUrl"),
        thumbnail=_nested(b, "thumbnailSelector", "thumbnailUrlAttribute"),
        title=_nested(b, "titleSelector", "titleAttribute"),
        filters=b.str_list("filters"),
    )


def _parse_full_size(root: _Block, selectors: Selectors) -> FullSizeStrategy:
    if not root.has("fullSizeActions"):
        return Direct()
    kind = root.block("fullSizeActions").choice(
        "type", ("direct", "detail_page", "lightbox", "url_param_decode", "url_cleaning"), "direct"
    )
    if kind == "detail_page":
        b = root.block(
            "fullSizeActions",
            {"type", "selectors", "attribute", "waitStrategy", "timeout", "waitDelay",
             "navigationWaitUntil", "navigationTimeout", "baseUrl"},
        )
        result = DetailPage(
            selectors=b.str_list("selectors"),
            attribute=b.text("attribute", "src"),
            wait_strategy=b.choice("waitStrategy", ("locator", "locator_any", "delay"), "locator"),
            timeout=b.integer("timeout", 7000, minimum=1),
            wait_delay=b.integer("waitDelay", 1500),
            navigation_wait_until=b.choice("navigationWaitUntil", WAIT_UNTIL_POLICIES, "domcontentloaded"),
            navigation_timeout=b.integer("navigationTimeout", 30000, minimum=1),
            base_url=b.text("baseUrl"),
        )
        if not result.selectors:
            root.problems.append("fullSizeActions.selectors is required for detail_page")
        return result
    if kind == "lightbox":
        b = root.block(
            "fullSizeActions", {"type", "clickTarget", "imageSelectors", "waitStrategy", "timeout", "waitDelay"}
        )
        result = Lightbox(
            image_selectors=b.str_list("imageSelectors") or selectors.lightbox_images,
            click_target=b.text("clickTarget", "self"),
            wait_strategy=b.choice("waitStrategy", ("locator", "delay"), "locator"),
            timeout=b.integer("timeout", 5000, minimum=1),
            wait_delay=b.integer("waitDelay", 1000),
        )
        if not result.image_selectors:
            root.problems.append("fullSizeActions.imageSelectors is required for lightbox")
        return result
    if kind == "url_param_decode":
        b = root.block("fullSizeActions", {"type", "paramName", "decode"})
        return UrlParamDecode(param_name=b.text("paramName", required=True), decode=b.flag("decode", True))
    if kind == "url_cleaning":
        b = root.block("fullSizeActions", {"type", "removeParams"})
        params = b.str_list("removeParams")
        if not params:
            root.problems.append("fullSizeActions.removeParams is required for url_cleaning")
        return UrlCleaning(remove_params=params)
    root.block("fullSizeActions", {"type"})
    return Direct()


def _parse_search_params(root: _Block) -> Tuple[SearchParam, ...]:
    params = []
    block = root.block("searchParamsConfig")
    for option in block.data:
        b = block.block(option, {"paramName", "onValue", "offValue"})
        on_value, off_value = b.text("onValue", required=True), b.text("offValue", required=True)
        params.append(SearchParam(option, b.text("paramName", option), on_value or "", off_value or ""))
    return tuple(params)


def _parse_api(root: _Block, requires_key: bool) -> Optional[ApiSearch]:
    if not root.has("api"):
        root.problems.append("api is required in API mode")
        return None
    b = root.block(
        "api",
        {"resultsPath", "urlPath", "urlTemplate", "titlePath", "keyParam", "keyHeader",
         "perPageParam", "pageParam", "maxPerPage"},
    )
    api = ApiSearch(
        results_path=b.text("resultsPath", required=True) or "",
        url_path=b.text("urlPath"),
        url_template=b.text("urlTemplate"),
        title_path=b.text("titlePath"),
        key_param=b.text("keyParam"),
        key_header=b.text("keyHeader"),
        per_page_param=b.text("perPageParam"),
        page_param=b.text("pageParam"),
        max_per_page=b.integer("maxPerPage", 100, minimum=1),
    )
    if (api.url_path is None) == (api.url_template is None):
        b.problems.append(f"{b.path} needs exactly one of urlPath and urlTemplate")
    if api.key_param and api.key_header:
        b.problems.append(f"{b.path} declares both keyParam and keyHeader")
    if requires_key and not (api.key_param or api.key_header):
        b.problems.append(f"{b.path} needs keyParam or keyHeader when requiresApiKey is true")
    return api


def parse_descriptor(data: Mapping[str, Any], key: Optional[str] = None) -> ProviderDescriptor:
    """Validate a raw descriptor mapping and build its immutable form."""
    problems: List[str] = []
    root = _Block(data, "descriptor", problems, _TOP_LEVEL_KEYS)
    name = root.text("name", required=True) or (key or "?")
    if root.flag("unverified", False):
        problems.append("descriptor is marked unverified; its selectors are guesses")

    sel = root.block(
        "selectors",
        {"images", "thumbnails", "imageLinks", "consentButtons", "loadMoreButton",
         "showMoreButton", "lightboxImages", "thumbnail", "title"},
    )
    selectors = Selectors(
        images=sel.text("images"),
        thumbnails=sel.text("thumbnails"),
        image_links=sel.text("imageLinks"),
        consent_buttons=sel.str_list("consentButtons"),
        load_more_button=sel.text("loadMoreButton"),
        show_more_button=sel.text("showMoreButton"),
        lightbox_images=sel.str_list("lightboxImages"),
    )

    api_mode = root.flag("apiMode", False)
    transformations = root.str_list("queryTransformations")
    for t in transformations:
        if t not in QUERY_TRANSFORMATIONS:
            problems.append(f"queryTransformations has unknown value {t!r}")

    search_url = root.text("searchUrl", required=True)
    requires_api_key = root.flag("requiresApiKey", False)
    api = None
    if api_mode:
        if "requiresApiKey" not in root.data:
            problems.append("requiresApiKey must be declared in API mode")
        extraction, scroll = None, NoScroll()
        full_size: FullSizeStrategy = Direct()
        api = _parse_api(root, requires_api_key)
    else:
        if root.has("api"):
            problems.append("api is only valid with apiMode")
        scroll = _parse_scroll(root)
        extraction = _parse_extraction(root)
        full_size = _parse_full_size(root, selectors)

    descriptor = ProviderDescriptor(
        key=key or descriptor_key(name),
        name=name,
        search_url=search_url,
        selectors=selectors,
        scroll=scroll,
        extraction=extraction,
        full_size=full_size,
        navigation_wait_until=root.choice("navigationWaitUntil", WAIT_UNTIL_POLICIES, "domcontentloaded"),
        navigation_timeout=root.integer("navigationTimeout", 30000, minimum=1),
        query_transformations=transformations,
        search_params=_parse_search_params(root),
        api_mode=api_mode,
        requires_api_key=requires_api_key,
        api=api,
        api_key_instructions=root.text("apiKeyInstructions"),
    )

    if not api_mode and extraction is not None:
        if descriptor.main_selector is None:
            problems.append("selectors must declare images, thumbnails or imageLinks")
        if isinstance(scroll, ManualPaging) and scroll.max_scrolls > 0 and not selectors.show_more_button:
            problems.append("selectors.showMoreButton is required for manual scrolling")
        if isinstance(scroll, LoadMoreOrScroll) and not selectors.load_more_button:
            problems.append("selectors.loadMoreButton is required for load_more_button_or_scroll")
        if isinstance(full_size, DetailPage) and not isinstance(extraction, LINK_EXTRACTIONS):
            problems.append("detail_page needs link_collection or attribute_collection extraction")

    if problems:
        raise ConfigError(f"Invalid descriptor {name!r}", problems=problems, provider=name)
    return descriptor


def check_credentials(
    descriptor: ProviderDescriptor,
    credentials: Optional[Mapping[str, str]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Optional[str]:
    """Return the API key for an API-mode descriptor, or raise if it is required and missing."""
    if not (descriptor.api_mode and descriptor.requires_api_key):
        return None
    environ = os.environ if environ is None else environ
    key = (credentials or {}).get(descriptor.key) or environ.get(descriptor.credential_env)
    if not key:
        hint = f" {descriptor.api_key_instructions}" if descriptor.api_key_instructions else ""
        raise ConfigError(
            f"Provider {descriptor.name} requires an API key (set {descriptor.credential_env}).{hint}",
            provider=descriptor.name,
        )
    return key
