import json
import logging

import pytest

from image_crawler.config import CrawlOptions, configure_logging, load_options, parse_size
from image_crawler.errors import ConfigError


@pytest.mark.parametrize("value, expected", [
    ("50KB", 50 * 1024),
    ("1.5 MB", int(1.5 * 1024 ** 2)),
    ("2g", 2 * 1024 ** 3),
    ("900", 900),
    (1234, 1234),
    (None, 0),
])
def test_parse_size(value, expected):
    assert parse_size(value) == expected


def test_parse_size_rejects_garbage():
    with pytest.raises(ConfigError):
        parse_size("lots")


def test_from_mapping_understands_legacy_keys():
    opts = CrawlOptions.from_mapping({
        "maxDownloads": 12, "minWidth": 800, "minFileSize": "10KB", "fileTypes": [".JPG", "png"],
        "somethingElse": True,
    })
    assert opts.max_results == 12
    assert opts.min_width == 800
    assert opts.min_file_size == 10 * 1024
    assert opts.file_types == ("jpg", "png")


def test_overrides_win_unless_none():
    opts = CrawlOptions.from_mapping({"max_results": 5, "concurrency": 3}, max_results=9, concurrency=None)
    assert (opts.max_results, opts.concurrency) == (9, 3)


def test_invalid_options_list_every_problem():
    with pytest.raises(ConfigError) as info:
        CrawlOptions(max_results=0, concurrency=0, overfetch=0.5)
    assert len(info.value.problems) == 3
    assert info.value.stage == "config"


def test_candidate_cap_uses_overfetch():
    assert CrawlOptions(max_results=10, overfetch=2.5).candidate_cap == 25
    assert CrawlOptions(max_results=10, overfetch=1).candidate_cap == 10


def test_load_options_reads_json_file(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"maxDownloads": 7, "outputDir": str(tmp_path / "dl")}))
    opts = load_options(path, min_height=100)
    assert opts.max_results == 7
    assert opts.output_dir == tmp_path / "dl"
    assert opts.min_height == 100


def test_load_options_missing_file_uses_defaults(tmp_path):
    assert load_options(tmp_path / "absent.json") == CrawlOptions()


def test_load_options_bad_json(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{not json")
    with pytest.raises(ConfigError, match="not valid JSON"):
        load_options(path)


def test_configure_logging_sets_package_level():
    configure_logging(verbose=True)
    assert logging.getLogger("image_crawler").level == logging.DEBUG
    configure_logging(verbose=False)
    assert logging.getLogger("image_crawler").level == logging.INFO
