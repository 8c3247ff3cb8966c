"""
Store-scoped client for the subset of the e-commerce platform REST API used by the sync.
"""

import logging
import os
from typing import Any, Optional

import httpx

from .exceptions import ErrorContext, RemoteRequestError
from .logging_config import get_correlation_id, log_remote_error
from .models import StoreCredential

logger = logging.getLogger(__name__)

ECOM_API_URL = os.environ.get("ECOM_API_URL", "https://api.e-com.plus/v1")
HTTP_TIMEOUT = float(os.environ.get("HTTP_TIMEOUT", "30"))


def response_body(response: httpx.Response) -> Any:
    """Decode a response body as JSON, falling back to text."""
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


class PlatformClient:
    """
    Thin JSON-over-HTTP client bound to one store.

    Every failure is logged with its request context and raised as
    RemoteRequestError; nothing is retried here.
    """

    def __init__(
        self,
        credential: StoreCredential,
        base_url: str = ECOM_API_URL,
        http: Optional[httpx.Client] = None,
    ):
        self.credential = credential
        self.base_url = base_url.rstrip("/")
        self.http = http or httpx.Client(timeout=HTTP_TIMEOUT)

    @property
    def store_id(self) -> int:
        return self.credential.store_id

    def api_request(
        self,
        resource: str,
        method: str = "GET",
        body: Optional[dict] = None,
        params: Optional[dict] = None,
    ) -> Any:
        """Send one request and return the decoded response body."""
        url = f"{self.base_url}/{resource.lstrip('/')}"
        context = ErrorContext(
            correlation_id=get_correlation_id(),
            store_id=self.store_id,
            additional_data={"params": params} if params else {},
        )
        try:
            response = self.http.request(
                method,
                url,
                params=params,
                json=body,
                headers=self.credential.auth_headers(),
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            error = RemoteRequestError(
                message=f"{method} {resource} failed with status {e.response.status_code}",
                resource=resource,
                method=method,
                status=e.response.status_code,
                response_body=response_body(e.response),
                context=context,
                original_exception=e,
            )
            log_remote_error(logger, error)
            raise error from e
        except httpx.HTTPError as e:
            error = RemoteRequestError(
                message=f"{method} {resource} failed: {e}",
                resource=resource,
                method=method,
                context=context,
                original_exception=e,
            )
            log_remote_error(logger, error)
            raise error from e

        logger.debug(f"{method} {resource} -> {response.status_code}")
        return response_body(response)

    def _result(self, resource: str, params: dict) -> list[dict]:
        data = self.api_request(resource, "GET", params=params) or {}
        result = data.get("result") if isinstance(data, dict) else None
        return result if isinstance(result, list) else []

    # ---- Products ----

    def find_products_by_sku(self, sku: str) -> list[dict]:
        return self._result("/products.json", {"sku": sku})

    def get_product(self, product_id: str) -> dict:
        return self.api_request(f"/products/{product_id}.json", "GET") or {}

    def create_product(self, body: dict) -> Any:
        return self.api_request("/products.json", "POST", body)

    def update_product(self, product_id: str, body: dict) -> Any:
        return self.api_request(f"/products/{product_id}.json", "PATCH", body)

    # ---- Taxonomy ----

    def find_brands(self, slug: str) -> list[dict]:
        return self._result("/brands.json", {"slug": slug})

    def create_brand(self, body: dict) -> Any:
        return self.api_request("/brands.json", "POST", body)

    def find_categories(self, name: str) -> list[dict]:
        return self._result("/categories.json", {"name": name})

    def create_category(self, body: dict) -> Any:
        return self.api_request("/categories.json", "POST", body)

    def close(self) -> None:
        self.http.close()
