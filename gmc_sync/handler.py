"""
AWS Lambda handler for feed synchronization.
Triggered by S3 uploads of feed documents, syncs their products to the store
and publishes a notification record to EventBridge.

A feed document is JSON of the form::

    {"store_id": 1234, "app_data": {"update_product": true}, "products": [{...}, ...]}

where every product is one feed record (``{"g:id": ..., "g:title": ...}``).
"""

import json
import os
import time
from typing import Any

import boto3
from botocore.config import Config
from pydantic import ValidationError

from .client import PlatformClient
from .exceptions import ConfigurationError, FeedSyncError, RemoteRequestError
from .logging_config import configure_logging, set_correlation_id, set_store_id
from .models import AppConfig, StoreCredential
from .notifications import NotificationPublisher
from .retry import retry_with_backoff
from .sync import FeedSynchronizer, group_feed_records

logger = configure_logging(
    level=os.environ.get("LOG_LEVEL", "INFO"),
    service_name="gmc-feed-sync",
)

AWS_REGION = os.environ.get("AWS_REGION", "us-east-1")
LOCALSTACK_ENDPOINT = os.environ.get("LOCALSTACK_ENDPOINT")

boto_config = Config(
    retries={"max_attempts": 3, "mode": "adaptive"},
    connect_timeout=10,
    read_timeout=60,
)


class AWSClientFactory:
    """Factory for creating AWS clients with proper configuration."""

    _s3_client = None
    _eventbridge_client = None

    @classmethod
    def _kwargs(cls) -> dict:
        kwargs = {"config": boto_config, "region_name": AWS_REGION}
        if LOCALSTACK_ENDPOINT:
            kwargs["endpoint_url"] = LOCALSTACK_ENDPOINT
        return kwargs

    @classmethod
    def get_s3_client(cls):
        if cls._s3_client is None:
            cls._s3_client = boto3.client("s3", **cls._kwargs())
        return cls._s3_client

    @classmethod
    def get_eventbridge_client(cls):
        if cls._eventbridge_client is None:
            cls._eventbridge_client = boto3.client("events", **cls._kwargs())
        return cls._eventbridge_client

    @classmethod
    def reset(cls):
        """Reset clients (useful for testing)."""
        cls._s3_client = None
        cls._eventbridge_client = None


@retry_with_backoff(
    max_attempts=3,
    base_delay=1.0,
    retryable_exceptions=(Exception,),
)
def download_from_s3(bucket: str, key: str) -> str:
    """
    Download a feed document from S3 with retry logic.

    Raises:
        RemoteRequestError: If download fails after retries
    """
    try:
        s3 = AWSClientFactory.get_s3_client()
        response = s3.get_object(Bucket=bucket, Key=key)
        content = response["Body"].read().decode("utf-8")
    except Exception as e:
        raise RemoteRequestError(
            message=f"Failed to download from S3: {e}",
            resource=f"s3://{bucket}/{key}",
            method="GetObject",
            original_exception=e,
        ) from e

    logger.info(f"Downloaded {len(content)} bytes from s3://{bucket}/{key}")
    return content


def load_credential(store_id: int) -> StoreCredential:
    """Credential of the store, supplied through the environment."""
    my_id = os.environ.get("ECOM_MY_ID")
    access_token = os.environ.get("ECOM_ACCESS_TOKEN")
    if not my_id or not access_token:
        raise ConfigurationError(
            message="Store credential is not configured",
            config_key="ECOM_MY_ID/ECOM_ACCESS_TOKEN",
        )
    return StoreCredential(store_id=store_id, my_id=my_id, access_token=access_token)


def parse_document(raw_data: str, source: str) -> tuple[int, AppConfig, list[dict]]:
    try:
        document = json.loads(raw_data)
    except json.JSONDecodeError as e:
        raise ConfigurationError(
            message=f"Invalid JSON in feed document: {e}",
            config_key=source,
        ) from e

    if not isinstance(document, dict) or "store_id" not in document:
        raise ConfigurationError(
            message="Feed document must be an object with a store_id",
            config_key=f"{source}#store_id",
        )

    try:
        store_id = int(document["store_id"])
        app_config = AppConfig.model_validate(document.get("app_data") or {})
    except (TypeError, ValueError, ValidationError) as e:
        raise ConfigurationError(
            message=f"Invalid store configuration: {e}",
            config_key=f"{source}#app_data",
        ) from e

    records = document.get("products") or []
    if not isinstance(records, list):
        records = [records]
    return store_id, app_config, records


def handler(event: dict, context: Any) -> dict:
    """
    Main Lambda handler for S3 trigger.

    Args:
        event: S3 event notification
        context: Lambda context

    Returns:
        Processing result summary
    """
    start_time = time.perf_counter()
    correlation_id = set_correlation_id()

    logger.info(
        "Lambda invocation started",
        extra={
            "event_type": "lambda_start",
            "aws_request_id": getattr(context, "aws_request_id", None) if context else None,
        },
    )

    try:
        if "Records" not in event or not event["Records"]:
            raise ConfigurationError(
                message="Invalid event structure: missing Records",
                config_key="event.Records",
            )

        s3_record = event["Records"][0]["s3"]
        bucket = s3_record["bucket"]["name"]
        key = s3_record["object"]["key"]
        source = f"s3://{bucket}/{key}"

        store_id, app_config, records = parse_document(download_from_s3(bucket, key), source)
        set_store_id(store_id)
        logger.info(
            f"Loaded {len(records)} feed records for store {store_id}",
            extra={"metrics": {"record_count": len(records)}},
        )

        client = PlatformClient(load_credential(store_id))
        try:
            with FeedSynchronizer(client, app_config) as sync:
                result = sync.sync_products(group_feed_records(records))
        finally:
            client.close()

        publisher = NotificationPublisher(AWSClientFactory.get_eventbridge_client())
        publisher.add_notification(
            store_id,
            resource="feed_sync",
            source=source,
            result=result.to_dict(),
        )

        return build_response(
            200,
            {
                "message": "Processing complete",
                "correlationId": correlation_id,
                "storeId": store_id,
                "source": {"bucket": bucket, "key": key},
                "sync": result.to_dict(),
                "failed": result.failed,
            },
            start_time,
        )

    except FeedSyncError as e:
        logger.error(
            f"Feed sync error: {e.message}",
            extra={"error": e.to_dict()},
        )
        return build_response(
            500 if e.retryable else 400,
            {
                "error": e.to_dict(),
                "correlationId": correlation_id,
            },
            start_time,
        )

    except Exception as e:
        logger.error(f"Unexpected error: {e}", exc_info=True)
        return build_response(
            500,
            {
                "error": {"type": type(e).__name__, "message": str(e)},
                "correlationId": correlation_id,
            },
            start_time,
        )


def build_response(status_code: int, body: dict, start_time: float) -> dict:
    """Build Lambda response with timing metadata."""
    duration_ms = (time.perf_counter() - start_time) * 1000

    body["durationMs"] = round(duration_ms, 2)

    logger.info(
        "Lambda invocation complete",
        extra={
            "event_type": "lambda_complete",
            "status_code": status_code,
            "duration_ms": round(duration_ms, 2),
        },
    )

    return {
        "statusCode": status_code,
        "body": body,
    }
