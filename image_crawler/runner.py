import argparse
import asyncio
import dataclasses
import json
import logging
import signal
import sys
from pathlib import Path

from image_crawler.browser import save_session
from image_crawler.config import BrowserOptions, configure_logging, load_options
from image_crawler.descriptors import check_credentials
from image_crawler.dispatcher import start_crawl
from image_crawler.errors import ConfigError
from image_crawler.local import LocalCrawler
from image_crawler.registry import default_registry

logger = logging.getLogger("image_crawler.runner")

ALL_PROVIDERS = "all"
OK_STATUSES = ("completed", "cancelled", "timed_out")


def parse_args(argv=None):
    p = argparse.ArgumentParser(prog="image-crawler", description="Descriptor-driven image crawler")
    p.add_argument("--config", type=Path, default=None, help="JSON options file (config.json style)")
    p.add_argument("--descriptors", type=Path, default=None,
                   help="Directory of extra *.json provider descriptors")
    p.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    sub = p.add_subparsers(dest="command", required=True)

    def add_run_options(sp):
        sp.add_argument("--out", dest="output_dir", type=Path, default=None, help="Destination directory")
        sp.add_argument("--max-results", type=int, default=None, help="Max images to keep")
        sp.add_argument("--min-width", type=int, default=None)
        sp.add_argument("--min-height", type=int, default=None)
        sp.add_argument("--min-file-size", type=str, default=None, help="e.g. 50KB")
        sp.add_argument("--file-types", type=lambda s: tuple(s.split(",")), default=None,
                        help="Comma separated, e.g. jpg,png")
        sp.add_argument("--concurrency", type=int, default=None, help="Parallel downloads")
        sp.add_argument("--time-budget", type=float, default=None, help="Seconds before the run is stopped")
        sp.add_argument("--output-format", type=str, default=None, help="Re-encode to jpg/png/webp")
        sp.add_argument("--out-json", type=Path, default=None, help="Write per-item results here")

    web = sub.add_parser("web", help="Search a provider and download results")
    web.add_argument("query")
    web.add_argument("--provider", "-p", required=True, help="Provider name (see `providers`), or `all` to try each in turn")
    web.add_argument("--headed", action="store_true", help="Show the browser window")
    web.add_argument("--storage-state", type=str, default=None,
                     help="Playwright storage_state json (for sites needing login)")
    web.add_argument("--no-safe-search", dest="safe_search", action="store_false", default=None)
    add_run_options(web)

    local = sub.add_parser("local", help="Filter and copy images from a local directory")
    local.add_argument("source", type=Path)
    local.add_argument("--preserve-structure", action="store_true")
    add_run_options(local)

    sub.add_parser("providers", help="List available providers")

    login = sub.add_parser("login", help="Log in manually and save the browser session")
    login.add_argument("url")
    login.add_argument("--save-to", default="auth.json")
    return p.parse_args(argv)


def _options(args):
    return load_options(
        args.config,
        output_dir=args.output_dir,
        max_results=args.max_results,
        min_width=args.min_width,
        min_height=args.min_height,
        min_file_size=args.min_file_size,
        file_types=args.file_types,
        concurrency=args.concurrency,
        time_budget=args.time_budget,
        output_format=args.output_format,
        safe_search=getattr(args, "safe_search", None),
    )


def _report(summary) -> dict:
    return {"summary": summary.to_dict(), "items": [i.to_dict() for i in summary.items]}


def _write_json(path: Path, data: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2)
    logger.info("Results written to %s", path)


def _status_line(summary) -> str:
    return (f"[{summary.status.upper()}] {summary.downloaded} downloaded, {summary.counters.skipped} skipped, "
            f"{summary.counters.failed} failed")


def _cancel_on_signal(cancel) -> None:
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel, "cancelled")
    except NotImplementedError:  # Windows event loops
        pass


async def _follow(events) -> None:
    async for event in events:
        if event.kind == "progress":
            logger.debug("progress %s", event.payload)
        elif event.kind == "error":
            logger.error("%s: %s", event.payload.get("error"), event.payload.get("message"))


async def _crawl_web(args, provider, options, registry):
    handle = start_crawl(
        args.query, provider, options, registry=registry,
        browser_options=BrowserOptions(headless=not args.headed, storage_state=args.storage_state),
    )
    _cancel_on_signal(handle.cancel)
    await _follow(handle.events)
    return await handle.result()


async def _crawl_all(args, options, registry):
    """Providers in registry order, each given what is left of ``max_results``.

    API providers without a key are skipped. A cancelled run stops the sweep.
    """
    summaries = []
    remaining = options.max_results
    for descriptor in registry.descriptors():
        if remaining <= 0:
            logger.info("max_results reached, not trying further providers")
            break
        try:
            check_credentials(descriptor)
        except ConfigError as exc:
            logger.info("skipping %s: %s", descriptor.name, exc.message)
            continue
        logger.info("trying %s for %d more images", descriptor.name, remaining)
        summary = await _crawl_web(args, descriptor, dataclasses.replace(options, max_results=remaining), registry)
        summaries.append(summary)
        remaining -= summary.downloaded
        if summary.status == "cancelled":
            break
    return summaries


async def main(argv=None) -> int:
    args = parse_args(argv)
    configure_logging(args.verbose)

    registry = default_registry()
    if args.descriptors:
        registry.load_dir(args.descriptors)

    if args.command == "providers":
        for d in registry.descriptors():
            mode = "api" if d.api_mode else d.scroll.tag
            print(f"{d.key:<24} {d.name:<24} {mode}")
        return 0

    if args.command == "login":
        await save_session(args.url, args.save_to)
        return 0

    options = _options(args)
    if args.command == "web" and args.provider.lower() == ALL_PROVIDERS:
        summaries = await _crawl_all(args, options, registry)
        if args.out_json:
            _write_json(args.out_json, {"runs": [_report(s) for s in summaries]})
        for summary in summaries:
            print(f"{summary.provider:<24} {_status_line(summary)}")
        print(f"[TOTAL] {sum(s.downloaded for s in summaries)} downloaded from {len(summaries)} providers "
              f"-> {options.output_dir}")
        return 0 if any(s.status in OK_STATUSES for s in summaries) else 1

    if args.command == "web":
        summary = await _crawl_web(args, args.provider, options, registry)
    else:
        crawler = LocalCrawler(args.source, options, preserve_structure=args.preserve_structure)
        _cancel_on_signal(crawler.cancel)
        task = asyncio.create_task(crawler.execute())
        await _follow(crawler.events)
        summary = await task

    if args.out_json:
        _write_json(args.out_json, _report(summary))
    print(f"{_status_line(summary)} -> {options.output_dir}")
    return 0 if summary.status in OK_STATUSES else 1


def run() -> None:
    try:
        sys.exit(asyncio.run(main()))
    except ConfigError as exc:
        print(f"error: {exc}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    run()
