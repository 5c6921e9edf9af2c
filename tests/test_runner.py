import json

import pytest

from fakes import distinct_images
from image_crawler import runner
from image_crawler.adapters.base import RunCounters, RunSummary
from image_crawler.registry import pick_adapter
from image_crawler.runner import main, parse_args


def test_parse_web_arguments():
    args = parse_args(["web", "red fox", "-p", "bing", "--max-results", "5", "--file-types", "jpg,png",
                       "--no-safe-search"])
    assert args.command == "web"
    assert args.query == "red fox"
    assert args.provider == "bing"
    assert args.max_results == 5
    assert args.file_types == ("jpg", "png")
    assert args.safe_search is False


def test_subcommand_is_required():
    with pytest.raises(SystemExit):
        parse_args([])


async def test_providers_lists_builtins(capsys):
    assert await main(["providers"]) == 0
    out = capsys.readouterr().out
    assert "bing" in out
    assert "api" in out.splitlines()[-1]


async def test_local_command_writes_results_json(tmp_path):
    src, out = tmp_path / "src", tmp_path / "out"
    src.mkdir()
    for n, data in enumerate(distinct_images(2)):
        (src / f"{n}.png").write_bytes(data)
    report = tmp_path / "report.json"
    code = await main(["local", str(src), "--out", str(out), "--min-width", "10", "--min-height", "10",
                       "--min-file-size", "0", "--out-json", str(report)])
    assert code == 0
    data = json.loads(report.read_text())
    assert data["summary"]["downloaded"] == 2
    assert {item["status"] for item in data["items"]} == {"downloaded"}


def fake_summary(provider, downloaded, status="completed"):
    return RunSummary("cats", provider, status, RunCounters(found=downloaded, downloaded=downloaded), 0.1)


async def test_provider_all_spreads_the_budget_until_it_is_met(tmp_path, monkeypatch, capsys):
    yields = iter([2, 0, 1, 5])
    calls = []

    async def fake_crawl_web(args, descriptor, options, registry):
        calls.append((descriptor.key, options.max_results))
        return fake_summary(descriptor.name, next(yields))

    monkeypatch.setattr(runner, "_crawl_web", fake_crawl_web)
    code = await main(["web", "cats", "-p", "all", "--max-results", "3", "--out", str(tmp_path)])
    assert code == 0
    assert calls == [("google", 3), ("bing", 1), ("duckduckgo", 1)]
    out = capsys.readouterr().out.splitlines()
    assert out[0].startswith("Google") and "[COMPLETED] 2 downloaded" in out[0]
    assert out[-1].startswith("[TOTAL] 3 downloaded from 3 providers")


async def test_provider_all_skips_api_providers_without_keys(tmp_path, monkeypatch):
    for key in ("flickr", "pexels"):
        monkeypatch.delenv(pick_adapter(key).credential_env, raising=False)
    tried = []

    async def fake_crawl_web(args, descriptor, options, registry):
        tried.append(descriptor.key)
        return fake_summary(descriptor.name, 0, status="failed")

    monkeypatch.setattr(runner, "_crawl_web", fake_crawl_web)
    report = tmp_path / "report.json"
    code = await main(["web", "cats", "-p", "ALL", "--out", str(tmp_path), "--out-json", str(report)])
    assert code == 1
    assert "flickr" not in tried and "pexels" not in tried
    assert tried[-1] == "wikimedia_commons"
    assert len(json.loads(report.read_text())["runs"]) == len(tried)
