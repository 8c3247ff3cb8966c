"""
Canonical data models for the feed synchronization pipeline.
These models mirror the remote platform's product schema; unknown remote
fields are kept so that re-synchronizing never drops data the feed does not own.
"""

import uuid
from typing import Any, Literal, Mapping, Optional, Sequence, Union

from pydantic import BaseModel, Field, PrivateAttr

FeedRecord = Mapping[str, Union[str, Sequence[str]]]

Condition = Literal["new", "refurbished", "used", "not_specified"]


class SpecificationEntry(BaseModel):
    """One value of a product specification (e.g. colors: Red)."""
    text: str
    value: str

    class Config:
        extra = "allow"


SpecificationSet = dict[str, list[Union[SpecificationEntry, str]]]


def random_object_id() -> str:
    """24 hex chars, the identifier shape the platform uses for nested documents."""
    return uuid.uuid4().hex[:24]


class TaxonomyNode(BaseModel):
    """Brand or category reference as stored on the product."""
    id: str = Field(..., alias="_id")
    name: str
    slug: Optional[str] = None

    class Config:
        populate_by_name = True
        extra = "allow"


class Measurement(BaseModel):
    """Numeric value with unit, used for weight and dimensions."""
    value: float
    unit: Optional[str] = None


class PriceEffectiveDate(BaseModel):
    """Sale price validity window as ISO-8601 instants."""
    start: str
    end: str


class ProductionTime(BaseModel):
    days: int

    class Config:
        extra = "allow"


class UploadedImage(BaseModel):
    """
    Picture stored on the platform: an id plus one entry per size variant
    (``normal``, ``big``, ``zoom``...), each holding at least ``url`` and ``alt``.
    """
    id: str = Field(..., alias="_id")

    class Config:
        populate_by_name = True
        extra = "allow"

    @property
    def variants(self) -> dict[str, Any]:
        return dict(self.model_extra or {})


class CanonicalVariation(BaseModel):
    """Variation of a product, restricted to the fields a variation may carry."""
    id: str = Field(..., alias="_id")
    sku: str
    name: Optional[str] = None
    quantity: int = 0
    price: Optional[float] = None
    base_price: Optional[float] = None
    weight: Optional[Measurement] = None
    specifications: SpecificationSet = Field(default_factory=dict)

    class Config:
        populate_by_name = True
        extra = "allow"

    def to_api_body(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class CanonicalProduct(BaseModel):
    """
    Canonical product model - the platform's normalized representation.

    Only the fields derived from the feed are validated. Fields of the stored
    remote record that the feed does not produce are carried untouched in
    ``remote_fields`` and written back as they were.
    """
    id: Optional[str] = Field(None, alias="_id")
    sku: str
    name: Optional[str] = None
    slug: Optional[str] = None
    subtitle: Optional[str] = None
    meta_title: Optional[str] = None
    meta_description: Optional[str] = Field(None, max_length=1000)
    keywords: list[str] = Field(default_factory=list)
    body_html: Optional[str] = None
    price: Optional[float] = None
    base_price: Optional[float] = None
    price_effective_date: Optional[PriceEffectiveDate] = None
    weight: Optional[Measurement] = None
    dimensions: Optional[dict[str, Measurement]] = None
    quantity: int = Field(0, ge=0)
    production_time: Optional[ProductionTime] = None
    categories: list[TaxonomyNode] = Field(default_factory=list, max_length=1)
    brands: list[TaxonomyNode] = Field(default_factory=list, max_length=1)
    specifications: SpecificationSet = Field(default_factory=dict)
    condition: Optional[Condition] = None
    gtin: Optional[list[str]] = None
    mpn: Optional[list[str]] = None
    pictures: list[UploadedImage] = Field(default_factory=list)
    variations: list[CanonicalVariation] = Field(default_factory=list)

    class Config:
        populate_by_name = True
        extra = "allow"

    _remote: dict = PrivateAttr(default_factory=dict)

    @classmethod
    def from_feed(cls, fields: dict, remote: Optional[Mapping[str, Any]] = None) -> "CanonicalProduct":
        """Validate ``fields`` and keep the rest of ``remote`` (minus its ``_id``) as is."""
        product = cls.model_validate(fields)
        product._remote = {
            key: value for key, value in (remote or {}).items()
            if key != "_id" and key not in fields
        }
        return product

    @property
    def remote_fields(self) -> dict:
        return dict(self._remote)

    def to_api_body(self) -> dict:
        """Remote-only fields overlaid with the fields derived from the feed."""
        body = dict(self._remote)
        body.update(
            self.model_dump(mode="json", by_alias=True, exclude_none=True, exclude_unset=True)
        )
        return body


class AppConfig(BaseModel):
    """Per-store options of the feed integration."""
    default_quantity: Optional[int] = None
    update_product: bool = False
    backorder_on_zero_stock: bool = False
    backorder_quantity: int = 9999
    backorder_days: int = 10

    class Config:
        extra = "ignore"


class StoreCredential(BaseModel):
    """Opaque credential for one store, supplied by the caller."""
    store_id: int
    my_id: str
    access_token: str

    def auth_headers(self) -> dict[str, str]:
        return {
            "X-Store-ID": str(self.store_id),
            "X-My-ID": self.my_id,
            "X-Access-Token": self.access_token,
        }
