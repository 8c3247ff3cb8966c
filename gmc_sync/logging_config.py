"""
Structured logging for the feed sync.

Under Lambda every record is one JSON document (CloudWatch Logs Insights can
filter on ``store_id``, ``sku`` or ``status``); locally a plain line format is
used. The correlation id and the store being synchronized travel in context
variables so deep helpers do not need them passed around.
"""

import functools
import json
import logging
import os
import sys
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Optional

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")
store_id_var: ContextVar[Optional[int]] = ContextVar("store_id", default=None)

# LogRecord attributes copied verbatim into the JSON document when present
RECORD_FIELDS = ("sku", "resource", "method", "status", "duration_ms", "metrics")

NOISY_LOGGERS = ("boto3", "botocore", "httpx", "httpcore", "urllib3")


def set_correlation_id(correlation_id: Optional[str] = None) -> str:
    """Bind a correlation id (a fresh uuid4 when none is given) to the current context."""
    cid = correlation_id or str(uuid.uuid4())
    correlation_id_var.set(cid)
    return cid


def get_correlation_id() -> str:
    return correlation_id_var.get()


def set_store_id(store_id: Optional[int]) -> None:
    store_id_var.set(store_id)


def get_store_id() -> Optional[int]:
    return store_id_var.get()


class StructuredJsonFormatter(logging.Formatter):
    """Render log records as single-line JSON documents."""

    def __init__(self, service_name: str = "gmc-feed-sync"):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        document = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
            "correlation_id": getattr(record, "correlation_id", None) or get_correlation_id(),
            "store_id": getattr(record, "store_id", None) or get_store_id(),
            "function": record.funcName,
            "line": record.lineno,
        }

        for name in RECORD_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                document[name] = value

        extra_data = getattr(record, "extra_data", None)
        if isinstance(extra_data, dict):
            document["data"] = extra_data

        if record.exc_info and record.exc_info[0]:
            exc_type, exc_value = record.exc_info[0], record.exc_info[1]
            document["exception"] = {
                "type": exc_type.__name__,
                "message": str(exc_value) if exc_value else None,
            }

        return json.dumps(document, default=str)


class StoreLogger(logging.LoggerAdapter):
    """
    Adapter stamping records with the current correlation id and store.

    ``bind(sku=...)`` returns a child adapter that also stamps the product.
    """

    def process(self, msg, kwargs):
        extra = {**self.extra, **kwargs.get("extra", {})}
        extra.setdefault("correlation_id", get_correlation_id())
        extra.setdefault("store_id", get_store_id())
        kwargs["extra"] = extra
        return msg, kwargs

    def bind(self, **fields) -> "StoreLogger":
        return StoreLogger(self.logger, {**self.extra, **fields})


def configure_logging(
    level: str = "INFO",
    service_name: str = "gmc-feed-sync",
) -> StoreLogger:
    """
    Install a single stdout handler on the root logger.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR)
        service_name: Value of the ``service`` field of JSON records

    Returns:
        A StoreLogger over the root logger
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for existing in root_logger.handlers[:]:
        root_logger.removeHandler(existing)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    if os.environ.get("AWS_LAMBDA_FUNCTION_NAME"):
        handler.setFormatter(StructuredJsonFormatter(service_name))
    else:
        handler.setFormatter(
            logging.Formatter("[%(levelname)s] %(asctime)s - %(name)s - %(message)s")
        )
    root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return StoreLogger(root_logger, {})


def log_remote_error(logger: logging.Logger, error: Exception) -> None:
    """
    Log a failed remote call with whatever request/response context it carries.

    Works with any exception exposing ``context`` (see exceptions.ErrorContext).
    """
    context = getattr(error, "context", None)
    details = context.to_dict() if context is not None else {}
    logger.error(
        f"{type(error).__name__}: {error}",
        extra={
            "resource": details.get("resource"),
            "method": details.get("method"),
            "status": details.get("status"),
            "extra_data": details,
        },
    )


def log_execution_time(logger: logging.Logger):
    """
    Log how long each call of the decorated function took, failed calls included.

    Example:
        @log_execution_time(logger)
        def save_product(self, feed_record):
            ...
    """

    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            start_time = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
                logger.error(
                    f"{func.__name__} failed after {duration_ms}ms: {e}",
                    extra={"duration_ms": duration_ms},
                )
                raise
            duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
            logger.info(f"{func.__name__} completed", extra={"duration_ms": duration_ms})
            return result
        return wrapper
    return decorator
