"""
Notification records for the audit/notification consumer, published to EventBridge.
"""

import json
import logging
import os
import time
from typing import Any

from .exceptions import NotificationError
from .logging_config import get_correlation_id
from .retry import retry_with_backoff

logger = logging.getLogger(__name__)

EVENT_BUS_NAME = os.environ.get("EVENT_BUS_NAME", "feed-sync-notifications")
EVENT_SOURCE = "com.gmcfeed.sync"
READY_DELAY_MS = 500


def build_notification(store_id: Any, **fields) -> dict:
    """
    Notification record: caller fields plus ``attempts``, ``ready_at`` (epoch
    ms, half a second from now) and ``store_id`` coerced to int.
    """
    notification = dict(fields)
    notification["attempts"] = 0
    notification["ready_at"] = int(time.time() * 1000) + READY_DELAY_MS
    notification["store_id"] = store_id if isinstance(store_id, int) else int(store_id)
    return notification


class NotificationPublisher:
    """Appends notification records to the EventBridge bus."""

    def __init__(self, eventbridge, event_bus_name: str = EVENT_BUS_NAME):
        self.eventbridge = eventbridge
        self.event_bus_name = event_bus_name

    @retry_with_backoff(
        max_attempts=3,
        base_delay=0.5,
        max_delay=10.0,
    )
    def _put_events(self, entries: list[dict]) -> dict:
        return self.eventbridge.put_events(Entries=entries)

    def add_notification(self, store_id: Any, detail_type: str = "FeedSyncNotification", **fields) -> dict:
        notification = build_notification(store_id, **fields)
        logger.info(f"[add_notification] {notification['store_id']}")
        entry = {
            "Source": EVENT_SOURCE,
            "DetailType": detail_type,
            "Detail": json.dumps(
                {**notification, "correlation_id": get_correlation_id()},
                default=str,
            ),
            "EventBusName": self.event_bus_name,
        }

        try:
            response = self._put_events([entry])
        except Exception as e:
            raise NotificationError(
                message=f"Failed to publish notification: {e}",
                event_bus=self.event_bus_name,
                original_exception=e,
            ) from e

        if response.get("FailedEntryCount", 0):
            raise NotificationError(
                message="EventBridge rejected the notification",
                event_bus=self.event_bus_name,
                original_exception=None,
            )
        return notification

