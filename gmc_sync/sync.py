"""
Synchronization of transformed feed records against the platform API.

Products are matched by SKU: a match is updated (only when the store opted
in), anything else is created. Variations and pictures are written as full
lists, replacing whatever the product had before.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from .client import PlatformClient
from .exceptions import (
    ErrorContext,
    FeedSyncError,
    UnexpectedResponseError,
    ValidationGapError,
)
from .feed import feed_sku, get_feed_text, image_links
from .images import ImageImporter
from .logging_config import StoreLogger, get_correlation_id, log_execution_time
from .models import AppConfig, FeedRecord, UploadedImage
from .specifications import VARIATION_ATTRIBUTES
from .taxonomy import TaxonomyResolver
from .transformer import ProductTransformer

logger = StoreLogger(logging.getLogger(__name__), {})

PARENT_EXCLUDED_KEYS = ["sku", "id", "item_group_id", *VARIATION_ATTRIBUTES]


@dataclass
class FeedProduct:
    """A product to synchronize and the feed records of its variations."""
    record: dict
    variations: list[dict] = field(default_factory=list)

    @property
    def image_links(self) -> list[str]:
        links = image_links(self.record)
        for variation in self.variations:
            links.extend(link for link in image_links(variation) if link not in links)
        return links


@dataclass
class SyncResult:
    """Result of synchronizing a batch of feed products."""
    successful: list[dict] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[dict] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return len(self.successful)

    @property
    def failure_count(self) -> int:
        return len(self.failed)

    @property
    def total_count(self) -> int:
        return self.success_count + len(self.skipped) + self.failure_count

    def to_dict(self) -> dict:
        return {
            "success_count": self.success_count,
            "skipped_count": len(self.skipped),
            "failure_count": self.failure_count,
            "total_count": self.total_count,
            "failed_skus": [f.get("sku") for f in self.failed],
        }


def _without_keys(record: FeedRecord, keys: Iterable[str]) -> dict:
    dropped = set()
    for key in keys:
        dropped.update({f"g:{key}", key, key.upper(), f"g:{key.upper()}"})
    return {k: v for k, v in record.items() if k not in dropped}


def group_feed_records(records: Iterable[FeedRecord]) -> list[FeedProduct]:
    """
    Group feed records sharing an ``item_group_id`` into one variable product.

    The parent record is the first record of the group with the group id as
    its id and without the per-variation attributes. Order of first
    appearance is kept.
    """
    products: list[FeedProduct] = []
    groups: dict[str, FeedProduct] = {}
    for record in records:
        group_id = get_feed_text("item_group_id", record)
        if not group_id:
            products.append(FeedProduct(record=dict(record)))
            continue
        if group_id not in groups:
            parent = _without_keys(record, PARENT_EXCLUDED_KEYS)
            parent["id"] = group_id
            groups[group_id] = FeedProduct(record=parent)
            products.append(groups[group_id])
        groups[group_id].variations.append(dict(record))
    return products


class FeedSynchronizer:
    """
    Runs the create/update protocol for one store.

    Use as a context manager to scope the taxonomy cache to one run:

        with FeedSynchronizer(client, app_config) as sync:
            sync.sync_products(group_feed_records(records))
    """

    def __init__(
        self,
        client: PlatformClient,
        app_config: Optional[AppConfig] = None,
        image_importer: Optional[ImageImporter] = None,
        taxonomy: Optional[TaxonomyResolver] = None,
    ):
        self.client = client
        self.app_config = app_config or AppConfig()
        self.taxonomy = taxonomy or TaxonomyResolver(client)
        self.transformer = ProductTransformer(client, self.app_config, self.taxonomy)
        self.image_importer = image_importer or ImageImporter(http=client.http)

    def __enter__(self) -> "FeedSynchronizer":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.taxonomy.clear_cache()
        return False

    @log_execution_time(logger)
    def save_product(
        self,
        feed_record: FeedRecord,
        variations: Optional[list[FeedRecord]] = None,
    ) -> dict:
        """
        Create or update the product of a feed record.

        Returns the platform response, ``{"_id": ...}`` when the platform
        answered without a body, or ``{}`` when updating is disabled and the
        product already exists.
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

        result = self.client.find_products_by_sku(sku)
        product = result[0] if result else {}
        product_id = product.get("_id")
        method = "PATCH" if product_id else "POST"

        product_logger = logger.bind(sku=sku)
        parsed = self.transformer.parse_product(feed_record, product)

        if not (self.app_config.update_product or method == "POST"):
            product_logger.info(f"Product {sku} exists and updates are disabled")
            return {}

        body = parsed.to_api_body()
        if product_id:
            response = self.client.update_product(product_id, body)
        else:
            response = self.client.create_product(body)
        product_logger.info(f"#{self.client.store_id} {method} product {sku}", extra={"method": method})
        ecom_response = response if isinstance(response, dict) and response else {"_id": product_id}
        if not ecom_response.get("_id"):
            found = self.client.find_products_by_sku(sku)
            if found and found[0].get("_id"):
                ecom_response = {**ecom_response, "_id": found[0]["_id"]}
            else:
                product_logger.warning(f"{method} of product {sku} returned no id")

        if variations:
            saved = self.client.find_products_by_sku(sku)
            if not saved:
                raise UnexpectedResponseError(
                    message=f"Product {sku} not found after {method}",
                    response_body=saved,
                    context=ErrorContext(
                        correlation_id=get_correlation_id(),
                        store_id=self.client.store_id,
                        sku=sku,
                    ),
                )
            self.save_variations(variations, saved[0])

        return ecom_response

    def save_variations(self, feed_variations: list[FeedRecord], product: dict) -> list[dict]:
        """Replace the variations of ``product`` with the transformed feed variations."""
        existing = product.get("variations") or []
        parsed_variations = []
        for feed_variation in feed_variations:
            sku = feed_sku(feed_variation)
            found = next(
                (v for v in existing if str(v.get("sku") or "") == sku),
                {},
            )
            variation = self.transformer.parse_variation(feed_variation, found)
            if not variation.specifications:
                logger.warning(
                    f"Skipping variation {variation.sku} without specifications",
                    extra={"sku": variation.sku},
                )
                continue
            parsed_variations.append(variation.to_api_body())

        self.client.update_product(product["_id"], {"variations": parsed_variations})
        logger.info(
            f"Saved {len(parsed_variations)} variations on {product.get('sku')}",
            extra={"sku": product.get("sku")},
        )
        return parsed_variations

    def save_images(self, product_id: str, links: list[str]) -> list[UploadedImage]:
        """Import every link independently and replace the product pictures with the successes."""
        logger.info(f"Saving {len(links)} images on product {product_id}")
        product = self.client.get_product(product_id)
        pictures = []
        for link in links:
            picture = self.image_importer.import_image(
                link, self.client.credential, product.get("name")
            )
            if picture:
                pictures.append(picture)

        self.client.update_product(
            product_id,
            {"pictures": [picture.model_dump(mode="json", by_alias=True) for picture in pictures]},
        )
        return pictures

    def sync_products(self, products: list[FeedProduct], with_images: bool = True) -> SyncResult:
        """
        Synchronize a batch of feed products one after the other.

        A failing product is recorded and the batch moves on.
        """
        result = SyncResult()
        logger.info(
            f"Starting sync of {len(products)} products",
            extra={"metrics": {"input_count": len(products)}},
        )

        for feed_product in products:
            sku = feed_sku(feed_product.record)
            try:
                response = self.save_product(feed_product.record, feed_product.variations)
                if not response:
                    result.skipped.append(sku)
                    continue
                product_id = response.get("_id")
                links = feed_product.image_links
                if with_images and links:
                    if product_id:
                        self.save_images(product_id, links)
                    else:
                        logger.warning(
                            f"Skipping {len(links)} images of {sku}: product id unknown",
                            extra={"sku": sku},
                        )
                result.successful.append({"sku": sku, "_id": product_id})
            except FeedSyncError as e:
                result.failed.append({"sku": sku, "error": e.to_dict()})
            except Exception as e:
                result.failed.append({
                    "sku": sku,
                    "error": {"type": type(e).__name__, "message": str(e)},
                })
                logger.error(f"Unexpected error syncing product {sku}: {e}", exc_info=True)

        logger.info(
            "Sync complete",
            extra={"metrics": result.to_dict()},
        )
        return result
