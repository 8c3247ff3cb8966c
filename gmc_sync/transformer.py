"""
Transformer module for converting Merchant Center feed records to canonical products.
Handles field derivation and normalization with comprehensive error handling.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Any, Optional

from .client import PlatformClient
from .exceptions import (
    ErrorContext,
    FeedSyncError,
    TransformationError,
    ValidationGapError,
)
from .feed import feed_sku, get_feed_text, get_feed_value, plain_text, slugify
from .logging_config import get_correlation_id
from .models import (
    AppConfig,
    CanonicalProduct,
    CanonicalVariation,
    FeedRecord,
    random_object_id,
)
from .specifications import get_specifications
from .taxonomy import TaxonomyResolver

logger = logging.getLogger(__name__)

DEFAULT_QUANTITY = 9999
CONDITIONS = {"new", "refurbished", "used", "not_specified"}
DIMENSIONS = ("length", "width", "height")
VARIATION_FIELDS = {"quantity", "sku", "name", "base_price", "price", "weight", "specifications"}
META_DESCRIPTION_MAX = 1000
KEYWORD_MAX = 49


def parse_number(value: Any) -> Optional[float]:
    """Parse a locale-formatted number (``1,5``, ``1.234,56``, ``1,234.56``)."""
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip().replace(" ", "")
    if "," in text and "." in text:
        if text.rfind(",") > text.rfind("."):
            text = text.replace(".", "").replace(",", ".")
        else:
            text = text.replace(",", "")
    else:
        text = text.replace(",", ".")
    try:
        return float(text)
    except ValueError:
        return None


def parse_price(value: Any) -> Optional[float]:
    """Strip currency letters and symbols (``$20``, ``15.00 USD``) and parse."""
    if not value:
        return None
    return parse_number(re.sub(r"[a-zA-Z$]", "", str(value)))


def parse_effective_date(value: str) -> Optional[dict]:
    """Parse a ``start/end`` pair into ISO-8601 UTC instants."""
    parts = value.split("/") if value else []
    if len(parts) != 2:
        return None
    try:
        start, end = (_parse_instant(part) for part in parts)
    except ValueError:
        logger.warning(f"Ignoring unparsable sale_price_effective_date {value!r}")
        return None
    return {"start": start, "end": end}


def _parse_instant(value: str) -> str:
    moment = datetime.fromisoformat(value.strip())
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    iso = moment.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return iso.replace("+00:00", "Z")


def parse_weight(value: str) -> Optional[dict]:
    """``"1,5 kg"`` -> ``{"value": 1.5, "unit": "kg"}``."""
    parts = value.split() if value else []
    if not parts:
        return None
    weight = parse_number(parts[0])
    if weight is None:
        return None
    return {"value": weight, "unit": parts[1] if len(parts) > 1 else None}


def parse_dimensions(feed_record: FeedRecord) -> dict:
    dimensions = {}
    for dimension in DIMENSIONS:
        raw = get_feed_text(f"shipping_{dimension}", feed_record).split()
        value = parse_number(raw[0]) if raw else None
        dimensions[dimension] = {"value": value or 1, "unit": "cm"}
    return dimensions


def parse_keywords(breadcrumb: str) -> list[str]:
    return [
        segment.strip()[:KEYWORD_MAX]
        for segment in breadcrumb.split(">")
        if segment.strip()
    ]


class ProductTransformer:
    """
    Transforms Merchant Center feed records into canonical platform products.

    Brand and category resolution hits the platform API, so the transformer is
    bound to one store client for the duration of a synchronization run.
    """

    def __init__(
        self,
        client: PlatformClient,
        app_config: Optional[AppConfig] = None,
        taxonomy: Optional[TaxonomyResolver] = None,
    ):
        self.client = client
        self.app_config = app_config or AppConfig()
        self.taxonomy = taxonomy or TaxonomyResolver(client)

    def parse_product(
        self,
        feed_record: FeedRecord,
        product: Optional[dict] = None,
    ) -> CanonicalProduct:
        """
        Build the canonical product for a feed record on top of ``product``.

        Fields derived from the feed replace fields of the same name in the
        previous remote record; everything else is carried through unvalidated.
        The remote ``_id`` is always dropped, the caller decides between create
        and update.

        Raises:
            ValidationGapError: If the record has no sku or id
            RemoteRequestError: If brand or category resolution fails remotely
            TransformationError: If any other step fails
        """
        sku = feed_sku(feed_record)
        if not sku:
            raise ValidationGapError(
                message="Feed record has neither sku nor id",
                sku="",
                field_name="sku",
                context=ErrorContext(
                    correlation_id=get_correlation_id(),
                    store_id=self.client.store_id,
                ),
            )

        try:
            fields = self._build_fields(feed_record, sku)
            canonical = CanonicalProduct.from_feed(fields, product)
        except FeedSyncError as e:
            e.context.sku = sku
            logger.error(
                f"[parse_product | ERROR] {self.client.store_id} {sku}: {e.message}",
                extra={"sku": sku, "extra_data": e.to_dict()},
            )
            raise
        except Exception as e:
            raise TransformationError(
                message=f"Failed to transform product {sku}: {e}",
                sku=sku,
                context=ErrorContext(
                    correlation_id=get_correlation_id(),
                    store_id=self.client.store_id,
                ),
                original_exception=e,
            ) from e

        if canonical.price is None:
            gap = ValidationGapError(
                message=f"No price could be derived for {sku}",
                sku=sku,
                field_name="price",
            )
            logger.warning(gap.message, extra={"sku": sku, "extra_data": gap.to_dict()})

        logger.info(
            f"[parse_product | SUCCESS] {self.client.store_id} {canonical.sku} {canonical.price}",
            extra={"sku": canonical.sku},
        )
        return canonical

    def parse_variation(
        self,
        feed_variation: FeedRecord,
        variation: Optional[dict] = None,
    ) -> CanonicalVariation:
        """
        Canonical variation for a feed record, keeping the identifier of the
        previously stored variation it matched (if any).
        """
        variation = variation or {}
        variation_id = variation.get("_id") or random_object_id()
        parsed = self.parse_product(feed_variation, variation)
        data = {k: v for k, v in parsed.remote_fields.items() if k in VARIATION_FIELDS}
        data.update(parsed.model_dump(include=VARIATION_FIELDS, exclude_none=True, exclude_unset=True))
        return CanonicalVariation(_id=variation_id, **data)

    def _build_fields(self, feed_record: FeedRecord, sku: str) -> dict:
        title = get_feed_text("title", feed_record)
        breadcrumb = plain_text(get_feed_value("google_product_category", feed_record))
        category = self.taxonomy.get_category(feed_record)

        fields: dict[str, Any] = {
            "sku": sku,
            "name": title,
            "subtitle": get_feed_text("subtitle", feed_record),
            "meta_title": title,
            "meta_description": get_feed_text("meta_description", feed_record)[:META_DESCRIPTION_MAX],
            "keywords": parse_keywords(breadcrumb),
            "body_html": get_feed_text("description", feed_record),
            "categories": [category] if category else [],
            "specifications": get_specifications(feed_record),
            "dimensions": parse_dimensions(feed_record),
        }

        weight = parse_weight(get_feed_text("shipping_weight", feed_record))
        if weight:
            fields["weight"] = weight

        fields.update(self._prices(feed_record))

        effective_date = parse_effective_date(
            get_feed_text("sale_price_effective_date", feed_record)
        )
        if effective_date:
            fields["price_effective_date"] = effective_date

        brand = self.taxonomy.get_brand(feed_record)
        if brand:
            fields["brands"] = [brand]

        slug = slugify(title)
        if slug:
            fields["slug"] = slug

        gtin = get_feed_text("gtin", feed_record)
        if gtin:
            fields["gtin"] = [gtin]
        mpn = get_feed_text("mpn", feed_record)
        if mpn:
            fields["mpn"] = [mpn]

        condition = get_feed_text("condition", feed_record).strip().lower()
        if condition in CONDITIONS:
            fields["condition"] = condition

        fields.update(self._stock(feed_record))
        return fields

    def _prices(self, feed_record: FeedRecord) -> dict:
        sale_price = get_feed_text("sale_price", feed_record)
        price = get_feed_text("price", feed_record)

        prices = {}
        if sale_price and price:
            prices["price"] = parse_price(sale_price)
            prices["base_price"] = parse_price(price)
        elif price:
            prices["price"] = parse_price(price)

        if not prices.get("price"):
            prices["price"] = prices.get("base_price")
        return {key: value for key, value in prices.items() if value is not None}

    def _stock(self, feed_record: FeedRecord) -> dict:
        """Quantity from availability, with the optional backorder rule for empty stock."""
        stock: dict[str, Any] = {"quantity": 0}
        availability = get_feed_text("availability", feed_record).strip()
        if not availability:
            return stock

        if availability.lower() == "in stock":
            stock["quantity"] = self.app_config.default_quantity or DEFAULT_QUANTITY
            return stock

        amount = parse_number(availability)
        if amount is None:
            return stock
        if amount > 0:
            stock["quantity"] = int(amount)
        elif self.app_config.backorder_on_zero_stock:
            stock["quantity"] = self.app_config.backorder_quantity
            stock["production_time"] = {"days": self.app_config.backorder_days}
        return stock
