# tests/test_utils.py
"""Tests for shared helpers."""

import re
from datetime import datetime, timezone

import pytest

from utils import (
    SECTION_COLORS,
    card_type_icon,
    export_filename,
    extract_domain,
    format_file_size,
    generate_random_color,
    generate_slug,
    is_valid_url,
)


@pytest.mark.parametrize("url,ok", [
    ("https://example.com", True),
    ("http://localhost:8080/path?q=1", True),
    ("  https://example.com/a  ", True),
    ("example.com", False),
    ("not a url", False),
    ("", False),
    (None, False),
])
def test_is_valid_url(url, ok):
    assert is_valid_url(url) is ok


def test_extract_domain():
    assert extract_domain("https://docs.python.org/3/") == "docs.python.org"
    assert extract_domain("nonsense") == "nonsense"


def test_generate_random_color_from_palette():
    assert generate_random_color() in SECTION_COLORS


def test_generate_slug():
    assert re.fullmatch(r"hello-world-\d+", generate_slug("  Hello, World! "))


@pytest.mark.parametrize("size,text", [
    (0, "0 Bytes"),
    (512, "512 Bytes"),
    (1024, "1 KB"),
    (1536, "1.5 KB"),
    (5 * 1024 * 1024, "5 MB"),
])
def test_format_file_size(size, text):
    assert format_file_size(size) == text


def test_card_type_icon_falls_back_to_link():
    assert card_type_icon("doc") != card_type_icon("link")
    assert card_type_icon("unknown") == card_type_icon("link")


def test_export_filename():
    assert export_filename(datetime(2024, 3, 9, tzinfo=timezone.utc)) == "linkboard-export-2024-03-09.json"
