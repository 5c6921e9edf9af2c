import json

from fakes import FakeElement, FakeSession, img, make_descriptor
from image_crawler.extraction import extract_candidates, json_path


async def _extract(session, descriptor, run):
    session.current_url = "https://img.example/search?q=cats"
    return await extract_candidates(session, descriptor, run)


async def test_attribute_reads_first_non_empty_attribute(make_run):
    d = make_descriptor(imageExtraction={"type": "attribute", "attributes": ["data-src", "src"]})
    session = FakeSession(results={"img.result": [
        FakeElement({"data-src": "", "src": "https://cdn.example/a.jpg"}),
        FakeElement({"data-src": "/b.jpg", "src": "https://cdn.example/ignored.jpg"}),
        FakeElement({"src": "data:image/gif;base64,R0lGOD"}),
    ]})
    found = await _extract(session, d, make_run())
    assert [c.thumbnail_url for c in found] == ["https://cdn.example/a.jpg", "https://img.example/b.jpg"]
    assert [c.order for c in found] == [0, 1]
    assert all(c.detail_url is None for c in found)


async def test_attribute_srcset_yields_largest(make_run):
    d = make_descriptor(imageExtraction={"type": "attribute", "attributes": ["srcset"]})
    session = FakeSession(results={"img.result": [
        FakeElement({"srcset": "https://u.example/p?w=400 400w, https://u.example/p?w=1080 1080w"}),
    ]})
    found = await _extract(session, d, make_run())
    assert found[0].thumbnail_url == "https://u.example/p?w=1080"


async def test_filters_exclude_and_require(make_run):
    d = make_descriptor(imageExtraction={
        "type": "attribute", "attributes": ["src"], "filters": ["!logo", "^https://cdn.example/"],
    })
    session = FakeSession(results={"img.result": [
        img("https://cdn.example/photo.jpg"),
        img("https://cdn.example/logo.png"),
        img("https://elsewhere.example/photo.jpg"),
    ]})
    found = await _extract(session, d, make_run())
    assert [c.thumbnail_url for c in found] == ["https://cdn.example/photo.jpg"]


async def test_link_collection_resolves_against_base_url(make_run):
    d = make_descriptor(
        selectors={"imageLinks": "a.card"},
        imageExtraction={"type": "link_collection", "baseUrl": "https://stock.example"},
        fullSizeActions={"type": "detail_page", "selectors": ["img.big"]},
    )
    session = FakeSession(results={"a.card": [FakeElement({"href": "/photo/1"}), FakeElement({})]})
    found = await _extract(session, d, make_run())
    assert len(found) == 1
    assert found[0].detail_url == "https://stock.example/photo/1"
    assert found[0].reference == "https://stock.example/photo/1"
    assert found[0].thumbnail_url is None


async def test_json_attribute_with_fallback_and_drop(make_run):
    d = make_descriptor(
        selectors={"thumbnails": "a.iusc"},
        imageExtraction={
            "type": "json_attribute", "attribute": "m", "jsonPath": "murl",
            "fallback": {"type": "nested_attribute", "selector": "img", "attributes": ["src"]},
        },
    )
    session = FakeSession(results={"a.iusc": [
        FakeElement({"m": json.dumps({"murl": "https://media.example/1.jpg"})}),
        FakeElement({"m": "{broken"}, children={"img": img("https://thumb.example/2.jpg")}),
        FakeElement({"m": json.dumps({"other": 1})}),
    ]})
    run = make_run()
    found = await _extract(session, d, run)
    assert [c.thumbnail_url for c in found] == ["https://media.example/1.jpg", "https://thumb.example/2.jpg"]
    assert run.counters.found == 2


async def test_attribute_collection_reads_nested_thumbnail_and_title(make_run):
    d = make_descriptor(
        selectors={"imageLinks": "a.card"},
        imageExtraction={
            "type": "attribute_collection",
            "thumbnailSelector": "img", "thumbnailUrlAttribute": ["src"],
            "titleSelector": "img", "titleAttribute": ["alt"],
        },
    )
    card = FakeElement({"href": "/art/1"}, children={"img": img("/t/1.jpg", alt="A heron")})
    session = FakeSession(results={"a.card": [card]})
    found = await _extract(session, d, make_run())
    assert found[0].detail_url == "https://img.example/art/1"
    assert found[0].thumbnail_url == "https://img.example/t/1.jpg"
    assert found[0].title == "A heron"
    assert found[0].element is card


async def test_dedup_is_cumulative_across_passes(make_run):
    d = make_descriptor()
    session = FakeSession(results={"img.result": [img("https://cdn.example/a.jpg?x=1&y=2")]})
    run = make_run()
    first = await _extract(session, d, run)
    session.results["img.result"] += [img("https://CDN.example/a.jpg?y=2&x=1"), img("https://cdn.example/b.jpg")]
    second = await _extract(session, d, run)
    assert len(first) == 1
    assert [c.thumbnail_url for c in second] == ["https://cdn.example/b.jpg"]
    ids = [c.id for c in first + second]
    assert len(ids) == len(set(ids)) == run.counters.found


def test_json_path():
    assert json_path({"a": {"b": "x"}}, "a.b") == "x"
    assert json_path({"a": 1}, "a.b") is None
    assert json_path({"imageinfo": [{"url": "u"}]}, "imageinfo.0.url") == "u"
    assert json_path({"imageinfo": []}, "imageinfo.0.url") is None
