"""
Firebase Cloud Messaging integration
====================================

Public re-exports for the FCM push notification service.
"""

from .pushService import (
    FcmDriverNotifier,
    NotificationError,
    SendResult,
    build_rebalancing_message,
    send_rebalancing_notification,
)

__all__ = [
    "FcmDriverNotifier",
    "NotificationError",
    "SendResult",
    "build_rebalancing_message",
    "send_rebalancing_notification",
]
