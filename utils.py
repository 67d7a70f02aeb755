"""
Small helpers shared by the API, the HTML pages and the scripts.
"""

import random
import re
import time
from datetime import datetime, timezone
from urllib.parse import urlparse

SECTION_COLORS = [
    '#ef4444', '#f97316', '#f59e0b', '#eab308', '#84cc16',
    '#22c55e', '#10b981', '#14b8a6', '#06b6d4', '#0ea5e9',
    '#3b82f6', '#6366f1', '#8b5cf6', '#a855f7', '#d946ef',
    '#ec4899', '#f43f5e',
]

CARD_TYPES = ("link", "gpt", "app", "doc")

_TYPE_ICONS = {
    "gpt": "&#129302;",
    "app": "&#128241;",
    "doc": "&#128196;",
}


def is_valid_url(value: str) -> bool:
    """True for absolute URLs with a scheme and a host."""
    if not value or not isinstance(value, str):
        return False
    try:
        parsed = urlparse(value.strip())
    except ValueError:
        return False
    return bool(parsed.scheme) and bool(parsed.netloc)


def extract_domain(url: str) -> str:
    """Hostname of a URL, or the input unchanged when it has none."""
    try:
        host = urlparse(url).hostname
    except ValueError:
        return url
    return host or url


def generate_random_color() -> str:
    return random.choice(SECTION_COLORS)


def generate_slug(name: str) -> str:
    """Lowercase, hyphenated slug with a millisecond suffix for uniqueness."""
    slug = name.lower().strip()
    slug = re.sub(r'[^\w\s-]', '', slug)
    slug = re.sub(r'[\s_-]+', '-', slug)
    slug = slug.strip('-')
    return f"{slug}-{int(time.time() * 1000)}"


def format_file_size(num_bytes: int) -> str:
    if num_bytes == 0:
        return '0 Bytes'
    sizes = ['Bytes', 'KB', 'MB', 'GB']
    i = 0
    value = float(num_bytes)
    while value >= 1024 and i < len(sizes) - 1:
        value /= 1024
        i += 1
    return f"{round(value, 2):g} {sizes[i]}"


def card_type_icon(card_type: str) -> str:
    """HTML entity shown next to a card, by card type."""
    return _TYPE_ICONS.get(card_type, "&#128279;")


def export_filename(now: datetime = None) -> str:
    now = now or datetime.now(timezone.utc)
    return f"linkboard-export-{now.strftime('%Y-%m-%d')}.json"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
