import dataclasses

import pytest

from image_crawler.adapters.base import CrawlRun
from image_crawler.config import CrawlOptions


@pytest.fixture
def options(tmp_path):
    return CrawlOptions(
        output_dir=tmp_path / "out",
        min_width=32,
        min_height=32,
        min_file_size=0,
        concurrency=2,
        backoff_base=0.01,
    )


@pytest.fixture
def make_run(options):
    def factory(provider="Example", **overrides):
        return CrawlRun("cats", provider, dataclasses.replace(options, **overrides))
    return factory
