"""
Merchant Center feed synchronization.

This package transforms Google Merchant Center style feed records into the
canonical product schema of an e-commerce platform and synchronizes products,
variations, brands, categories and pictures against the platform API.
"""

from .client import PlatformClient
from .exceptions import (
    ConfigurationError,
    FeedSyncError,
    NotificationError,
    RemoteRequestError,
    TaxonomyResolutionError,
    TransformationError,
    UnexpectedResponseError,
    ValidationGapError,
)
from .feed import feed_sku, get_feed_value, slugify
from .images import ImageImporter
from .models import AppConfig, CanonicalProduct, CanonicalVariation, StoreCredential, UploadedImage
from .specifications import get_specifications
from .sync import FeedProduct, FeedSynchronizer, SyncResult, group_feed_records
from .taxonomy import TaxonomyResolver
from .transformer import ProductTransformer

__all__ = [
    "PlatformClient",
    "FeedSynchronizer",
    "FeedProduct",
    "SyncResult",
    "group_feed_records",
    "ProductTransformer",
    "TaxonomyResolver",
    "ImageImporter",
    "get_feed_value",
    "get_specifications",
    "feed_sku",
    "slugify",
    "AppConfig",
    "CanonicalProduct",
    "CanonicalVariation",
    "StoreCredential",
    "UploadedImage",
    "FeedSyncError",
    "RemoteRequestError",
    "UnexpectedResponseError",
    "ValidationGapError",
    "TransformationError",
    "TaxonomyResolutionError",
    "NotificationError",
    "ConfigurationError",
]

__version__ = "1.0.0"
