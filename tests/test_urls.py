import pytest

from image_crawler.utils.urls import (
    absolutize,
    is_http_url,
    largest_from_srcset,
    normalize_url,
    passes_filters,
    query_param,
    strip_params,
)


def test_normalize_url_sorts_query_and_drops_fragment():
    assert normalize_url("HTTPS://IMG.Example/a/b.jpg?z=1&a=2#top") == "https://img.example/a/b.jpg?a=2&z=1"


def test_normalize_url_collapses_equivalent_forms():
    assert normalize_url("https://img.example/x?b=2&a=1") == normalize_url("https://IMG.example/x?a=1&b=2")


def test_absolutize():
    assert absolutize("/p/1", "https://site.example/search?q=x") == "https://site.example/p/1"
    assert absolutize("//cdn.example/a.jpg", "https://site.example/") == "https://cdn.example/a.jpg"
    assert absolutize("https://other.example/a.jpg", "https://site.example/") == "https://other.example/a.jpg"


def test_largest_from_srcset_takes_last_entry():
    srcset = "https://i.example/236x/a.jpg 1x, https://i.example/474x/a.jpg 2x, https://i.example/736x/a.jpg 3x"
    assert largest_from_srcset(srcset) == "https://i.example/736x/a.jpg"
    assert largest_from_srcset("") is None


@pytest.mark.parametrize("url,filters,expected", [
    ("https://a.example/photo.jpg", [], True),
    ("https://a.example/profile-1.jpg", ["!profile-"], False),
    ("https://www.freeimages.com/photo/1", ["^https://www.freeimages.com"], True),
    ("https://ads.example/photo/1", ["^https://www.freeimages.com"], False),
    ("https://a.example/artwork/1", ["/artwork/"], True),
    ("https://a.example/user/1", ["/artwork/"], False),
])
def test_passes_filters(url, filters, expected):
    assert passes_filters(url, filters) is expected


def test_strip_params_removes_sizing_params():
    assert strip_params("https://img.example/x.jpg?w=100&h=200&q=80", ["w", "h", "q"]) == "https://img.example/x.jpg"


def test_strip_params_keeps_other_params():
    assert strip_params("https://img.example/x.jpg?w=100&id=7", ["w"]) == "https://img.example/x.jpg?id=7"


def test_query_param_decodes():
    url = "https://ddg.example/?u=https%3A%2F%2Fsrc.example%2Fphoto.jpg"
    assert query_param(url, "u") == "https://src.example/photo.jpg"
    assert query_param(url, "u", decode=False) == "https%3A%2F%2Fsrc.example%2Fphoto.jpg"
    assert query_param(url, "missing") is None


def test_is_http_url():
    assert is_http_url("https://a.example/x.jpg")
    assert not is_http_url("data:image/png;base64,AAAA")
    assert not is_http_url("/relative.jpg")
    assert not is_http_url(None)
