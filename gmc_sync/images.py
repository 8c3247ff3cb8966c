"""
Re-hosting of feed images on the platform object storage.
"""

import logging
import os
from typing import Optional
from urllib.parse import urlparse

import httpx

from .client import HTTP_TIMEOUT, response_body
from .exceptions import ErrorContext, FeedSyncError, RemoteRequestError, UnexpectedResponseError
from .logging_config import get_correlation_id, log_remote_error
from .models import StoreCredential, UploadedImage, random_object_id

logger = logging.getLogger(__name__)

ECOM_STORAGE_URL = os.environ.get("ECOM_STORAGE_URL", "https://apx-storage.e-com.plus")


def image_filename(url: str) -> str:
    return os.path.basename(urlparse(url).path) or "image.jpg"


class ImageImporter:
    """Downloads an image and uploads it to the store's object storage."""

    def __init__(self, http: Optional[httpx.Client] = None, storage_url: str = ECOM_STORAGE_URL):
        self.http = http or httpx.Client(timeout=HTTP_TIMEOUT, follow_redirects=True)
        self.storage_url = storage_url.rstrip("/")

    def import_image(
        self,
        source_url: str,
        credential: StoreCredential,
        product_name: Optional[str],
    ) -> Optional[UploadedImage]:
        """
        Returns the uploaded picture, or None when anything fails.

        Failures are logged and never raised, so one broken link does not
        stop the remaining images of a product.
        """
        try:
            content = self._download(source_url)
            data, status = self._upload(source_url, content, credential)
            return self._parse_picture(data, status, product_name)
        except FeedSyncError as e:
            e.context.additional_data["source_url"] = source_url
            log_remote_error(logger, e)
        except httpx.HTTPError as e:
            logger.error(f"Image import of {source_url} failed: {e}")
        return None

    def _download(self, source_url: str) -> bytes:
        try:
            response = self.http.get(source_url)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise RemoteRequestError(
                message=f"Image download failed with status {e.response.status_code}",
                resource=source_url,
                method="GET",
                status=e.response.status_code,
                context=ErrorContext(correlation_id=get_correlation_id()),
                original_exception=e,
            ) from e
        return response.content

    def _upload(self, source_url: str, content: bytes, credential: StoreCredential):
        resource = f"{self.storage_url}/{credential.store_id}/api/v1/upload.json"
        try:
            response = self.http.post(
                resource,
                files={"file": (image_filename(source_url), content)},
                headers=credential.auth_headers(),
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            # request content is the image binary, keep it out of the logs
            raise RemoteRequestError(
                message=f"Storage upload failed with status {e.response.status_code}",
                resource=resource,
                method="POST",
                status=e.response.status_code,
                response_body=response_body(e.response),
                context=ErrorContext(
                    correlation_id=get_correlation_id(),
                    store_id=credential.store_id,
                ),
                original_exception=e,
            ) from e
        return response_body(response), response.status_code

    def _parse_picture(self, data, status: int, product_name: Optional[str]) -> UploadedImage:
        picture = data.get("picture") if isinstance(data, dict) else None
        variants = {}
        for size, variant in (picture or {}).items():
            if not isinstance(variant, dict) or not variant.get("url"):
                continue
            variant = {k: v for k, v in variant.items() if k != "size"}
            variant["alt"] = f"{product_name} ({size})"
            variants[size] = variant

        if not variants:
            raise UnexpectedResponseError(
                message="Unexpected Storage API response",
                response_body=data,
                status=status,
                context=ErrorContext(correlation_id=get_correlation_id()),
            )
        return UploadedImage(_id=random_object_id(), **variants)
