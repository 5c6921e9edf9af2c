import asyncio
import json

import aiofiles.os
import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from fakes import FakeFetcher, distinct_images, make_image
from image_crawler.adapters.base import CandidateItem, ImageStatus, ResolvedImage
from image_crawler.errors import DownloadError
from image_crawler.utils.download import DownloadPipeline, HttpFetcher
from image_crawler.utils.images import ImageInspector
from image_crawler.utils.storage import FileStorage


def resolved(url, order=0):
    item = ResolvedImage(CandidateItem(id=url, provider="Example", order=order, thumbnail_url=url))
    item.resolve(url)
    return item


async def run_pipeline(run, fetcher, items, **kwargs):
    pipeline = DownloadPipeline(run, fetcher, FileStorage(run.options.output_dir), **kwargs)
    pipeline.start()
    for item in items:
        run.track(item)
        await pipeline.submit(item)
    await pipeline.close()
    return pipeline


def saved_files(run):
    out = run.options.output_dir
    return sorted(p for p in out.rglob("*") if p.is_file()) if out.exists() else []


async def test_accepted_images_are_persisted(make_run):
    run = make_run()
    images = distinct_images(3)
    urls = [f"https://cdn.example/img{i}.png" for i in range(3)]
    await run_pipeline(run, FakeFetcher(dict(zip(urls, images))), [resolved(u, i) for i, u in enumerate(urls)])
    assert run.counters.downloaded == 3
    assert [p.name for p in saved_files(run)] == ["img0.png", "img1.png", "img2.png"]
    assert all(i.status is ImageStatus.DOWNLOADED and i.width == 64 for i in run.items)


async def test_never_persists_more_than_max_results(make_run):
    run = make_run(max_results=2, concurrency=4)
    images = distinct_images(8)
    urls = [f"https://cdn.example/{i}.png" for i in range(8)]
    await run_pipeline(run, FakeFetcher(dict(zip(urls, images))), [resolved(u, i) for i, u in enumerate(urls)])
    assert run.counters.downloaded == 2
    assert len(saved_files(run)) == 2


async def test_too_small_image_is_skipped_and_not_written(make_run):
    run = make_run(min_width=640, min_height=480)
    url = "https://cdn.example/small.png"
    await run_pipeline(run, FakeFetcher({url: make_image(320, 240)}), [resolved(url)])
    item = run.items[0]
    assert item.status is ImageStatus.SKIPPED
    assert item.reason == "too small"
    assert run.counters.skipped == 1
    assert saved_files(run) == []


async def test_disallowed_format_is_skipped(make_run):
    run = make_run(file_types=("jpg",))
    url = "https://cdn.example/a.png"
    await run_pipeline(run, FakeFetcher({url: make_image()}), [resolved(url)])
    assert run.items[0].reason == "format not allowed"


async def test_min_file_size(make_run):
    run = make_run(min_file_size="1MB")
    url = "https://cdn.example/a.png"
    await run_pipeline(run, FakeFetcher({url: make_image()}), [resolved(url)])
    assert run.items[0].reason == "file too small"


async def test_same_content_under_two_urls_is_saved_once(make_run):
    run = make_run()
    data = make_image()
    fetcher = FakeFetcher({"https://a.example/1.png": data, "https://b.example/1.png": data})
    await run_pipeline(run, fetcher, [resolved("https://a.example/1.png"), resolved("https://b.example/1.png", 1)])
    assert run.counters.downloaded == 1
    assert run.counters.skipped == 1
    assert len(saved_files(run)) == 1


async def test_fetch_failure_is_skipped_and_run_continues(make_run):
    run = make_run()
    ok = "https://cdn.example/ok.png"
    items = [resolved("https://cdn.example/boom.png"), resolved("https://cdn.example/gone.png", 1), resolved(ok, 2)]
    fetcher = FakeFetcher({ok: make_image(), "https://cdn.example/boom.png": DownloadError("HTTP 503", transient=True)})
    await run_pipeline(run, fetcher, items)
    assert run.counters.skipped == 2
    assert run.counters.failed == 0
    assert run.counters.downloaded == 1
    assert [(i.status, i.reason) for i in items[:2]] == [(ImageStatus.SKIPPED, "HTTP 503"),
                                                         (ImageStatus.SKIPPED, "HTTP 404")]


async def test_not_an_image_is_skipped(make_run):
    run = make_run()
    url = "https://cdn.example/page.html"
    await run_pipeline(run, FakeFetcher({url: b"<html></html>"}), [resolved(url)])
    assert run.items[0].status is ImageStatus.SKIPPED
    assert run.items[0].reason == "not an image"


async def test_reencode_to_output_format(make_run):
    run = make_run(output_format="jpg")
    url = "https://cdn.example/a.png"
    await run_pipeline(run, FakeFetcher({url: make_image()}), [resolved(url)])
    [path] = saved_files(run)
    assert path.suffix == ".jpg"
    assert ImageInspector().inspect(path.read_bytes()).format == "jpg"


async def test_submit_refused_after_cancel(make_run):
    run = make_run()
    pipeline = DownloadPipeline(run, FakeFetcher({}), FileStorage(run.options.output_dir))
    pipeline.start()
    run.cancel()
    assert await pipeline.submit(resolved("https://cdn.example/a.png")) is False
    await pipeline.close()


async def test_cancel_stops_in_flight_downloads(make_run):
    run = make_run(concurrency=2)
    urls = [f"https://cdn.example/{i}.png" for i in range(6)]
    fetcher = FakeFetcher(dict(zip(urls, distinct_images(6))), delay=10)
    pipeline = DownloadPipeline(run, fetcher, FileStorage(run.options.output_dir))
    pipeline.start()

    async def produce():
        for i, u in enumerate(urls):
            item = run.track(resolved(u, i))
            if not await pipeline.submit(item):
                break

    producer = asyncio.create_task(produce())
    while len(fetcher.calls) < 2:
        await asyncio.sleep(0.01)
    run.cancel()
    await asyncio.wait_for(producer, 1)
    await asyncio.wait_for(pipeline.close(), 1)
    assert run.counters.downloaded == 0
    assert saved_files(run) == []


# --- HttpFetcher against a real local server --------------------------------

@pytest.fixture
async def image_server():
    hits = {"flaky": 0, "missing": 0}
    png = make_image()

    async def ok(request):
        return web.Response(body=png, content_type="image/png")

    async def flaky(request):
        hits["flaky"] += 1
        if hits["flaky"] == 1:
            return web.Response(status=503)
        return web.Response(body=png, content_type="image/png")

    async def missing(request):
        hits["missing"] += 1
        return web.Response(status=404)

    async def search(request):
        return web.json_response({"auth": request.headers.get("Authorization"),
                                  "accept": request.headers.get("Accept")})

    app = web.Application()
    app.router.add_get("/ok.png", ok)
    app.router.add_get("/search", search)
    app.router.add_get("/flaky.png", flaky)
    app.router.add_get("/missing.png", missing)
    server = TestServer(app)
    await server.start_server()
    yield server, hits, png
    await server.close()


async def test_http_fetcher_downloads(image_server):
    server, _, png = image_server
    async with HttpFetcher(attempts=2, backoff_base=0.01) as fetcher:
        assert await fetcher.fetch(str(server.make_url("/ok.png"))) == png


async def test_http_fetcher_sends_per_request_headers(image_server):
    server, _, _ = image_server
    async with HttpFetcher() as fetcher:
        body = await fetcher.fetch(str(server.make_url("/search")),
                                   headers={"Authorization": "k", "Accept": "application/json"})
    assert json.loads(body) == {"auth": "k", "accept": "application/json"}


async def test_http_fetcher_retries_transient_status(image_server):
    server, hits, png = image_server
    async with HttpFetcher(attempts=2, backoff_base=0.01) as fetcher:
        assert await fetcher.fetch(str(server.make_url("/flaky.png"))) == png
    assert hits["flaky"] == 2


async def test_http_fetcher_does_not_retry_client_errors(image_server):
    server, hits, _ = image_server
    async with HttpFetcher(attempts=2, backoff_base=0.01) as fetcher:
        with pytest.raises(DownloadError) as info:
            await fetcher.fetch(str(server.make_url("/missing.png")))
    assert info.value.status == 404
    assert not info.value.transient
    assert hits["missing"] == 1


async def test_http_fetcher_connection_error_is_transient():
    async with HttpFetcher(attempts=2, backoff_base=0.01) as fetcher:
        with pytest.raises(DownloadError) as info:
            await fetcher.fetch("http://127.0.0.1:9/nothing.png")
    assert info.value.transient


async def test_storage_never_overwrites_and_leaves_no_temp_files(tmp_path):
    storage = FileStorage(tmp_path)
    first = await storage.save(b"one", "photo", "jpg")
    second = await storage.save(b"two", "photo", "jpg")
    nested = await storage.save(b"three", "photo", "JPG", subdir="a/b")
    assert (first.name, second.name) == ("photo.jpg", "photo_1.jpg")
    assert nested == tmp_path / "a" / "b" / "photo.jpg"
    assert first.read_bytes() == b"one"
    assert not [p for p in tmp_path.rglob("*.part")]


async def test_storage_reserves_names_without_placeholder_files(tmp_path):
    storage = FileStorage(tmp_path)
    first = await storage._claim(tmp_path, "photo", "jpg")
    second = await storage._claim(tmp_path, "photo", "jpg")
    assert (first.name, second.name) == ("photo.jpg", "photo_1.jpg")
    assert list(tmp_path.iterdir()) == []


async def test_concurrent_saves_get_distinct_names(tmp_path):
    storage = FileStorage(tmp_path)
    saved = await asyncio.gather(*(storage.save(bytes([n]), "photo", "jpg") for n in range(3)))
    assert sorted(p.name for p in saved) == ["photo.jpg", "photo_1.jpg", "photo_2.jpg"]
    assert sorted(p.read_bytes() for p in saved) == [b"\x00", b"\x01", b"\x02"]


async def test_failed_write_leaves_nothing_and_frees_the_name(tmp_path, monkeypatch):
    storage = FileStorage(tmp_path)

    async def disk_full(src, dst):
        raise OSError("No space left on device")

    monkeypatch.setattr(aiofiles.os, "replace", disk_full)
    with pytest.raises(OSError):
        await storage.save(b"one", "photo", "jpg")
    monkeypatch.undo()
    assert list(tmp_path.iterdir()) == []
    assert (await storage.save(b"two", "photo", "jpg")).name == "photo.jpg"
