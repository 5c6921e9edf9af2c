"""URL helpers: dedup keys, srcset parsing, filters and query rewriting."""

from typing import Iterable, Optional
from urllib.parse import parse_qsl, unquote, urlencode, urljoin, urlsplit, urlunsplit


def normalize_url(url: str) -> str:
    """Dedup key: lower-cased scheme and host, path, sorted query, no fragment."""
    parts = urlsplit(url.strip())
    query = urlencode(sorted(parse_qsl(parts.query, keep_blank_values=True)))
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), parts.path or "/", query, ""))


def absolutize(url: str, base: Optional[str]) -> str:
    """Resolve relative and protocol-relative references against ``base``."""
    url = url.strip()
    if url.startswith(("http://", "https://")) or not base:
        return url
    return urljoin(base, url)


def is_http_url(url: Optional[str]) -> bool:
    return bool(url) and urlsplit(url).scheme in ("http", "https") and bool(urlsplit(url).netloc)


def largest_from_srcset(srcset: Optional[str]) -> Optional[str]:
    # "url1 1x, url2 2x, url3 3x" -> last entry is taken as the largest
    if not srcset:
        return None
    candidates = [c.strip() for c in srcset.split(",") if c.strip()]
    if not candidates:
        return None
    return candidates[-1].split()[0]


def passes_filters(url: str, filters: Iterable[str]) -> bool:
    """``!x`` excludes URLs containing x, ``^x`` requires the prefix x, anything else requires x."""
    for f in filters:
        if f.startswith("!"):
            if f[1:] in url:
                return False
        elif f.startswith("^"):
            if not url.startswith(f[1:]):
                return False
        elif f not in url:
            return False
    return True


def strip_params(url: str, names: Iterable[str]) -> str:
    names = set(names)
    parts = urlsplit(url)
    kept = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k not in names]
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(kept), parts.fragment))


def query_param(url: str, name: str, decode: bool = True) -> Optional[str]:
    """Raw (still percent-encoded) value of ``name``, decoded on request."""
    for pair in urlsplit(url).query.split("&"):
        key, sep, value = pair.partition("=")
        if unquote(key) == name and sep and value:
            return unquote(value) if decode else value
    return None
