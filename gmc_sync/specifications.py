"""
Specification mapping from Merchant Center attributes to platform specifications.
"""

import logging
import re
from dataclasses import dataclass
from typing import Callable, Optional, Union

from .feed import get_feed_text, get_feed_value
from .models import FeedRecord, SpecificationEntry, SpecificationSet

logger = logging.getLogger(__name__)

FormatterResult = Union[str, list[SpecificationEntry]]


@dataclass(frozen=True)
class SpecificationRule:
    """Maps one feed attribute onto one canonical specification."""
    gmc_attribute: str
    attribute: str
    formatter: Optional[Callable[[str], FormatterResult]] = None
    is_variation: bool = False


GENDER_MAP = {
    "male": "male",
    "men": "male",
    "masculino": "male",
    "female": "female",
    "women": "female",
    "feminino": "female",
    "unisex": "unisex",
}

AGE_GROUPS = {"newborn", "infant", "toddler", "kids", "adult"}


def format_gender(value: str) -> str:
    return GENDER_MAP.get(value.strip().lower(), value.strip())


def format_age_group(value: str) -> str:
    age_group = value.strip().lower()
    return age_group if age_group in AGE_GROUPS else value.strip()


def format_sizes(value: str) -> FormatterResult:
    """A size list such as ``"S, M, L"`` fans out into one entry per size."""
    sizes = [size.strip() for size in re.split(r"[,;]", value) if size.strip()]
    if len(sizes) <= 1:
        return value.strip()
    return [SpecificationEntry(text=size, value=size.lower()) for size in sizes]


SPECIFICATION_MAP: list[SpecificationRule] = [
    SpecificationRule("color", "colors", is_variation=True),
    SpecificationRule("size", "size", formatter=format_sizes, is_variation=True),
    SpecificationRule("gender", "gender", formatter=format_gender),
    SpecificationRule("age_group", "age_group", formatter=format_age_group),
    SpecificationRule("material", "material", is_variation=True),
    SpecificationRule("pattern", "pattern", is_variation=True),
    SpecificationRule("size_type", "size_type"),
    SpecificationRule("size_system", "size_system"),
]

VARIATION_ATTRIBUTES = [rule.gmc_attribute for rule in SPECIFICATION_MAP if rule.is_variation]


def get_specifications(
    feed_record: FeedRecord,
    rules: Optional[list[SpecificationRule]] = None,
) -> SpecificationSet:
    """
    Build the specification set of a feed record.

    Records belonging to a variation group only take variation rules, and
    always end up with at least a ``label`` specification built from the title.
    A later rule targeting the same attribute replaces the earlier one.
    """
    rules = SPECIFICATION_MAP if rules is None else rules
    item_group_id = get_feed_value("item_group_id", feed_record)
    if item_group_id:
        rules = [rule for rule in rules if rule.is_variation]

    specifications: SpecificationSet = {}
    for rule in rules:
        feed_values = get_feed_value(rule.gmc_attribute, feed_record)
        if not isinstance(feed_values, (list, tuple)):
            feed_values = [feed_values]

        entries = []
        for feed_value in feed_values:
            if not feed_value:
                continue
            feed_value = str(feed_value)
            result = rule.formatter(feed_value) if rule.formatter else feed_value
            if isinstance(result, list):
                entries.extend(result)
            else:
                entries.append(SpecificationEntry(text=feed_value, value=result.lower()))

        if entries:
            specifications[rule.attribute] = entries

    if item_group_id and not specifications:
        title = get_feed_text("title", feed_record)
        logger.debug(f"No variation specification for group {item_group_id}, using title label")
        specifications["label"] = [SpecificationEntry(text=title, value=title)]

    return specifications
