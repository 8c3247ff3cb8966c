"""Pytest fixtures and configuration."""

import copy
import json
import os
import re
import uuid

import httpx
import pytest

os.environ["AWS_DEFAULT_REGION"] = "us-east-1"
os.environ["AWS_ACCESS_KEY_ID"] = "testing"
os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
os.environ["EVENT_BUS_NAME"] = "test-event-bus"
os.environ["ECOM_MY_ID"] = "test-my-id"
os.environ["ECOM_ACCESS_TOKEN"] = "test-token"

from gmc_sync.client import PlatformClient
from gmc_sync.images import ImageImporter
from gmc_sync.models import AppConfig, StoreCredential
from gmc_sync.retry import RetryConfig
from gmc_sync.sync import FeedSynchronizer
from gmc_sync.taxonomy import TaxonomyResolver
from gmc_sync.transformer import ProductTransformer

STORE_ID = 1001
API_URL = "https://api.test/v1"
STORAGE_URL = "https://storage.test"

FAST_RETRY = RetryConfig(max_attempts=3, base_delay=0, jitter=False)


class FakePlatform:
    """In-memory stand-in for the platform API, object storage and image hosts."""

    def __init__(self):
        self.products: list[dict] = []
        self.brands: list[dict] = []
        self.categories: list[dict] = []
        self.requests: list[tuple[str, str, dict, object]] = []
        self.failures: dict[tuple[str, str], int] = {}
        self.lookup_lag = 0
        self.storage_picture = {
            "zoom": {"url": "https://cdn.test/zoom/shoe.jpg", "size": "1200x1200"},
            "big": {"url": "https://cdn.test/big/shoe.jpg", "size": "700x700"},
            "normal": {"url": "https://cdn.test/normal/shoe.jpg", "size": "350x350"},
        }
        self.bodiless: set[tuple[str, str]] = set()
        self._pending: dict[str, int] = {}

    def calls(self, method: str, path: str = None) -> list:
        return [
            r for r in self.requests
            if r[0] == method and (path is None or r[1].endswith(path))
        ]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        request.read()
        method = request.method
        host = request.url.host
        path = request.url.path
        params = dict(request.url.params)
        body = None
        if request.content and request.headers.get("content-type", "").startswith("application/json"):
            body = json.loads(request.content)
        self.requests.append((method, host + path, params, body))

        if (method, path) in self.failures:
            return httpx.Response(self.failures[(method, path)], json={"message": "boom"})

        response = self._route(method, host, path, params, body)
        if (method, path) in self.bodiless:
            return httpx.Response(response.status_code)
        return response

    def _route(self, method, host, path, params, body) -> httpx.Response:
        if host == "images.test":
            if "missing" in path:
                return httpx.Response(404)
            return httpx.Response(200, content=b"\x89PNG fake image")

        if host == "storage.test":
            return httpx.Response(200, json={"picture": copy.deepcopy(self.storage_picture)})

        if path == "/v1/products.json":
            if method == "GET":
                found = [p for p in self.products if p.get("sku") == params.get("sku")]
                return httpx.Response(200, json={"result": copy.deepcopy(found)})
            product = {**body, "_id": uuid.uuid4().hex[:24]}
            self.products.append(product)
            return httpx.Response(201, json={"_id": product["_id"]})

        match = re.fullmatch(r"/v1/products/(\w+)\.json", path)
        if match:
            product = next((p for p in self.products if p["_id"] == match.group(1)), None)
            if product is None:
                return httpx.Response(404, json={"message": "not found"})
            if method == "GET":
                return httpx.Response(200, json=copy.deepcopy(product))
            product.update(body)
            return httpx.Response(204)

        if path == "/v1/brands.json":
            return self._taxonomy(self.brands, "slug", method, params, body)
        if path == "/v1/categories.json":
            return self._taxonomy(self.categories, "name", method, params, body)

        return httpx.Response(404, json={"message": "unknown route"})

    def _taxonomy(self, nodes, field, method, params, body) -> httpx.Response:
        if method == "GET":
            visible = []
            for node in nodes:
                if node[field] != params.get(field):
                    continue
                if self._pending.get(node["_id"], 0) > 0:
                    self._pending[node["_id"]] -= 1
                    continue
                visible.append(node)
            return httpx.Response(200, json={"result": copy.deepcopy(visible)})
        node = {**body, "_id": uuid.uuid4().hex[:24]}
        nodes.append(node)
        self._pending[node["_id"]] = self.lookup_lag
        return httpx.Response(201, json={"_id": node["_id"]})


@pytest.fixture
def platform():
    return FakePlatform()


@pytest.fixture
def http_client(platform):
    client = httpx.Client(transport=httpx.MockTransport(platform))
    yield client
    client.close()


@pytest.fixture
def credential():
    return StoreCredential(store_id=STORE_ID, my_id="test-my-id", access_token="test-token")


@pytest.fixture
def client(credential, http_client):
    return PlatformClient(credential, base_url=API_URL, http=http_client)


@pytest.fixture
def taxonomy(client):
    return TaxonomyResolver(client, retry_config=FAST_RETRY)


@pytest.fixture
def image_importer(http_client):
    return ImageImporter(http=http_client, storage_url=STORAGE_URL)


@pytest.fixture
def app_config():
    return AppConfig()


@pytest.fixture
def transformer(client, app_config, taxonomy):
    return ProductTransformer(client, app_config, taxonomy)


@pytest.fixture
def synchronizer(client, app_config, image_importer, taxonomy):
    return FeedSynchronizer(client, app_config, image_importer=image_importer, taxonomy=taxonomy)


@pytest.fixture
def shoe_record():
    """A simple product record, as in the end-to-end example."""
    return {
        "title": "Shoe",
        "sku": "A1",
        "price": "$50",
        "availability": "in stock",
        "google_product_category": "Shoes > Running",
    }


@pytest.fixture
def full_record():
    """A namespaced record using most supported attributes."""
    return {
        "g:id": "RUN 42",
        "g:title": "Trail Runner Pro",
        "g:description": "<p>Lightweight trail shoe</p>",
        "g:link": "https://shop.test/trail-runner",
        "g:image_link": "https://images.test/trail.jpg",
        "g:additional_image_link": [
            "https://images.test/trail-side.jpg",
            "https://images.test/trail-sole.jpg",
        ],
        "g:price": "129.90 USD",
        "g:sale_price": "99.90 USD",
        "g:sale_price_effective_date": "2024-03-01T00:00:00+00:00/2024-03-31T23:59:59+00:00",
        "g:availability": "5",
        "g:brand": "&lt;b&gt;Acmé Sports&lt;/b&gt;",
        "g:google_product_category": "Apparel &amp; Accessories > Shoes > Trail Running",
        "g:condition": "NEW",
        "g:gtin": "0012345678905",
        "g:mpn": "TRP-42",
        "g:shipping_weight": "1,5 kg",
        "g:shipping_length": "30",
        "g:shipping_width": "20 cm",
        "g:color": "Blue",
        "g:gender": "Men",
    }


@pytest.fixture
def variation_records():
    """Two records of one variation group."""
    base = {
        "g:item_group_id": "TEE",
        "g:title": "Basic Tee",
        "g:price": "20.00 USD",
        "g:availability": "in stock",
        "g:google_product_category": "Apparel > Shirts",
        "g:brand": "Acme",
    }
    return [
        {**base, "g:id": "TEE-S", "g:size": "S", "g:color": "White",
         "g:image_link": "https://images.test/tee-white.jpg"},
        {**base, "g:id": "TEE-M", "g:size": "M", "g:color": "White",
         "g:image_link": "https://images.test/tee-white.jpg"},
    ]
