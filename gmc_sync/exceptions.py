"""
Custom exceptions for the feed synchronization pipeline.
Provides structured error handling with rich context for debugging and monitoring.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class ErrorSeverity(Enum):
    """Severity levels for errors."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Categories of errors for routing and handling."""
    VALIDATION = "validation"
    TRANSFORMATION = "transformation"
    REMOTE_API = "remote_api"
    STORAGE = "storage"
    TAXONOMY = "taxonomy"
    CONFIGURATION = "configuration"
    NOTIFICATION = "notification"


@dataclass
class ErrorContext:
    """Rich context for error tracking and debugging."""
    correlation_id: Optional[str] = None
    store_id: Optional[int] = None
    sku: Optional[str] = None
    field_name: Optional[str] = None
    resource: Optional[str] = None
    method: Optional[str] = None
    status: Optional[int] = None
    response_body: Optional[Any] = None
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    additional_data: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Convert context to dictionary for logging."""
        return {
            "correlation_id": self.correlation_id,
            "store_id": self.store_id,
            "sku": self.sku,
            "field_name": self.field_name,
            "resource": self.resource,
            "method": self.method,
            "status": self.status,
            "response_body": self.response_body,
            "timestamp": self.timestamp,
            **self.additional_data,
        }


class FeedSyncError(Exception):
    """Base exception for all feed synchronization errors."""

    def __init__(
        self,
        message: str,
        context: Optional[ErrorContext] = None,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        category: ErrorCategory = ErrorCategory.TRANSFORMATION,
        retryable: bool = False,
        original_exception: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.message = message
        self.context = context or ErrorContext()
        self.severity = severity
        self.category = category
        self.retryable = retryable
        self.original_exception = original_exception

    def to_dict(self) -> dict:
        """Serialize exception for logging and monitoring."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "severity": self.severity.value,
            "category": self.category.value,
            "retryable": self.retryable,
            "context": self.context.to_dict(),
            "original_exception": str(self.original_exception) if self.original_exception else None,
        }


class RemoteRequestError(FeedSyncError):
    """Raised when a call to the platform API, storage or image source fails."""

    def __init__(
        self,
        message: str,
        resource: str,
        method: str,
        status: Optional[int] = None,
        response_body: Optional[Any] = None,
        context: Optional[ErrorContext] = None,
        original_exception: Optional[Exception] = None,
    ):
        ctx = context or ErrorContext()
        ctx.resource = resource
        ctx.method = method
        ctx.status = status
        ctx.response_body = response_body

        super().__init__(
            message=message,
            context=ctx,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.REMOTE_API,
            retryable=status is None or status >= 500,
            original_exception=original_exception,
        )
        self.resource = resource
        self.method = method
        self.status = status
        self.response_body = response_body


class UnexpectedResponseError(FeedSyncError):
    """Raised when a remote response lacks the data the pipeline relies on."""

    def __init__(
        self,
        message: str,
        response_body: Any,
        status: Optional[int] = None,
        context: Optional[ErrorContext] = None,
    ):
        ctx = context or ErrorContext()
        ctx.status = status
        ctx.response_body = response_body

        super().__init__(
            message=message,
            context=ctx,
            severity=ErrorSeverity.MEDIUM,
            category=ErrorCategory.STORAGE,
            retryable=False,
        )
        self.response_body = response_body
        self.status = status


class ValidationGapError(FeedSyncError):
    """Raised when a required canonical field cannot be derived from the feed."""

    def __init__(
        self,
        message: str,
        sku: str,
        field_name: str,
        context: Optional[ErrorContext] = None,
    ):
        ctx = context or ErrorContext()
        ctx.sku = sku
        ctx.field_name = field_name

        super().__init__(
            message=message,
            context=ctx,
            severity=ErrorSeverity.LOW,
            category=ErrorCategory.VALIDATION,
            retryable=False,
        )
        self.sku = sku
        self.field_name = field_name


class TransformationError(FeedSyncError):
    """Raised when feed-to-canonical transformation fails."""

    def __init__(
        self,
        message: str,
        sku: Optional[str],
        field_name: Optional[str] = None,
        context: Optional[ErrorContext] = None,
        original_exception: Optional[Exception] = None,
    ):
        ctx = context or ErrorContext()
        ctx.sku = sku
        ctx.field_name = field_name

        super().__init__(
            message=message,
            context=ctx,
            severity=ErrorSeverity.MEDIUM,
            category=ErrorCategory.TRANSFORMATION,
            retryable=False,
            original_exception=original_exception,
        )


class TaxonomyResolutionError(FeedSyncError):
    """Raised when a brand or category is still missing after being created."""

    def __init__(
        self,
        message: str,
        kind: str,
        name: str,
        attempts: int,
        context: Optional[ErrorContext] = None,
    ):
        ctx = context or ErrorContext()
        ctx.additional_data["taxonomy_kind"] = kind
        ctx.additional_data["taxonomy_name"] = name
        ctx.additional_data["attempts"] = attempts

        super().__init__(
            message=message,
            context=ctx,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.TAXONOMY,
            retryable=True,
        )
        self.kind = kind
        self.name = name
        self.attempts = attempts


class NotificationError(FeedSyncError):
    """Raised when publishing a notification record fails."""

    def __init__(
        self,
        message: str,
        event_bus: str,
        context: Optional[ErrorContext] = None,
        original_exception: Optional[Exception] = None,
    ):
        ctx = context or ErrorContext()
        ctx.additional_data["event_bus"] = event_bus

        super().__init__(
            message=message,
            context=ctx,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.NOTIFICATION,
            retryable=True,
            original_exception=original_exception,
        )
        self.event_bus = event_bus


class ConfigurationError(FeedSyncError):
    """Raised when configuration is invalid or missing."""

    def __init__(
        self,
        message: str,
        config_key: str,
        context: Optional[ErrorContext] = None,
    ):
        ctx = context or ErrorContext()
        ctx.additional_data["config_key"] = config_key

        super().__init__(
            message=message,
            context=ctx,
            severity=ErrorSeverity.CRITICAL,
            category=ErrorCategory.CONFIGURATION,
            retryable=False,
        )
        self.config_key = config_key
