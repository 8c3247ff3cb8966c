"""
Brand and category resolution against the platform taxonomy.

Nodes are looked up remotely and created when missing. The remote store does
not promise read-your-writes, so after a create the node is looked up again a
bounded number of times with exponential backoff.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from .client import PlatformClient
from .exceptions import ErrorContext, RemoteRequestError, TaxonomyResolutionError
from .feed import get_feed_value, plain_text, slugify
from .logging_config import get_correlation_id
from .models import FeedRecord, TaxonomyNode
from .retry import RetryableOperation, RetryConfig

logger = logging.getLogger(__name__)

DEFAULT_TAXONOMY_RETRY = RetryConfig(
    max_attempts=4,
    base_delay=0.5,
    max_delay=5.0,
    retryable_exceptions=(),
)


@dataclass(frozen=True)
class TaxonomyLookup:
    """How one kind of taxonomy node is found and created remotely."""
    kind: str
    find: Callable[[str], list[dict]]
    create: Callable[[dict], object]
    lookup_field: str


class TaxonomyResolver:
    """
    Resolves the brand and category of feed records to platform nodes.

    The cache only lives as long as the resolver; one resolver serves one
    synchronization run.
    """

    def __init__(
        self,
        client: PlatformClient,
        retry_config: Optional[RetryConfig] = None,
        use_cache: bool = True,
    ):
        self.client = client
        self.retry_config = retry_config or DEFAULT_TAXONOMY_RETRY
        self.use_cache = use_cache
        self._cache: dict[tuple[str, str], TaxonomyNode] = {}
        self.brands = TaxonomyLookup("brand", client.find_brands, client.create_brand, "slug")
        self.categories = TaxonomyLookup(
            "category", client.find_categories, client.create_category, "name"
        )

    def get_brand(self, feed_record: FeedRecord) -> Optional[TaxonomyNode]:
        name = plain_text(get_feed_value("brand", feed_record)).strip()
        return self.resolve(self.brands, name)

    def get_category(self, feed_record: FeedRecord) -> Optional[TaxonomyNode]:
        breadcrumb = plain_text(get_feed_value("google_product_category", feed_record))
        name = breadcrumb.split(">")[-1].strip()
        return self.resolve(self.categories, name)

    def resolve(self, lookup: TaxonomyLookup, name: str) -> Optional[TaxonomyNode]:
        """Find the node named ``name``, creating it if the platform has none."""
        if not name:
            return None
        slug = slugify(name)
        key = slug if lookup.lookup_field == "slug" else name
        if not key:
            logger.warning(f"Cannot derive a {lookup.lookup_field} for {lookup.kind} {name!r}")
            return None
        cache_key = (lookup.kind, key)
        if self.use_cache and cache_key in self._cache:
            return self._cache[cache_key]

        created = False
        try:
            for attempt in RetryableOperation(self.retry_config):
                result = lookup.find(key)
                if result:
                    node = TaxonomyNode(
                        _id=result[0]["_id"],
                        name=result[0].get("name", name),
                        slug=result[0].get("slug", slug),
                    )
                    if self.use_cache:
                        self._cache[cache_key] = node
                    return node

                if not created:
                    logger.info(f"Creating {lookup.kind} {name!r} ({slug})")
                    lookup.create({"name": name, "slug": slug})
                    created = True
                else:
                    logger.warning(
                        f"{lookup.kind} {name!r} not visible yet after create "
                        f"(attempt {attempt + 1}/{self.retry_config.max_attempts})"
                    )
        except RemoteRequestError as e:
            logger.error(
                f"Failed to resolve {lookup.kind} {name!r}: {e.message}",
                extra={"extra_data": e.context.to_dict()},
            )
            raise

        raise TaxonomyResolutionError(
            message=f"{lookup.kind} {name!r} still missing after "
                    f"{self.retry_config.max_attempts} lookups",
            kind=lookup.kind,
            name=name,
            attempts=self.retry_config.max_attempts,
            context=ErrorContext(
                correlation_id=get_correlation_id(),
                store_id=self.client.store_id,
            ),
        )

    def clear_cache(self) -> None:
        self._cache.clear()
