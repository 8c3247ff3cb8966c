"""
Helpers for reading Merchant Center feed records.

Feed producers mix the XML-namespaced convention (``g:price``) with the flat
one (``price``) and are inconsistent about casing, so every lookup goes
through ``get_feed_value``.
"""

import re
from typing import Any

from bs4 import BeautifulSoup
from slugify import slugify as _slugify

from .models import FeedRecord

__all__ = [
    "get_feed_value",
    "get_feed_text",
    "feed_sku",
    "slugify",
    "plain_text",
    "image_links",
]


def get_feed_value(key: str, record: FeedRecord) -> Any:
    """
    Return the first non-empty value among ``g:key``, ``key``, ``KEY`` and
    ``g:KEY``, or an empty string.
    """
    upper = key.upper()
    for candidate in (f"g:{key}", key, upper, f"g:{upper}"):
        value = record.get(candidate)
        if value:
            return value
    return ""


def get_feed_text(key: str, record: FeedRecord) -> str:
    """Like get_feed_value but always a string; repeated keys yield their first value."""
    value = get_feed_value(key, record)
    if isinstance(value, (list, tuple)):
        value = next((v for v in value if v), "")
    return str(value) if value else ""


def feed_sku(record: FeedRecord) -> str:
    """SKU of a feed record: ``sku`` falling back to ``id``, whitespace runs as ``_``."""
    sku = get_feed_text("sku", record) or get_feed_text("id", record)
    return re.sub(r"\s+", "_", sku)


def slugify(text: str) -> str:
    """
    Convert text to a lowercase, ASCII-only, hyphen-separated slug.

    Accents are folded and non-Latin scripts transliterated (``Обувь`` ->
    ``obuv``); anything left that is not a letter or digit separates words.
    """
    if not text:
        return ""
    return _slugify(str(text))


def plain_text(value: Any) -> str:
    """Extract the text of a value that may carry markup or HTML entities."""
    if isinstance(value, (list, tuple)):
        value = next((v for v in value if v), "")
    if not value:
        return ""
    text = BeautifulSoup(str(value), "html.parser").get_text()
    if "<" in text:
        # markup that arrived entity-escaped
        text = BeautifulSoup(text, "html.parser").get_text()
    return text


def image_links(record: FeedRecord) -> list[str]:
    """Main image followed by additional images, without duplicates."""
    links = []
    for key in ("image_link", "additional_image_link"):
        value = get_feed_value(key, record)
        if isinstance(value, str):
            value = value.split(",")
        for link in value or []:
            link = link.strip()
            if link and link not in links:
                links.append(link)
    return links
