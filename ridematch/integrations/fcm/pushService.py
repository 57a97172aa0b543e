"""
Firebase Cloud Messaging (FCM) Push Service
===========================================

Delivers rebalancing instructions to driver devices through the Firebase
Admin SDK.

Initialization:
  The SDK is initialised lazily on first send.  Credentials come from
  ``settings.firebase_service_account_path`` (a service-account file) or
  ``settings.firebase_credentials_json`` (the raw JSON document).

Retry logic:
  Transient failures (unavailable, deadline exceeded, HTTP 5xx) are
  retried up to ``MAX_RETRIES`` times with exponential backoff.  Invalid
  device tokens fail immediately and are flagged on the result.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

import firebase_admin
from firebase_admin import credentials, messaging
from firebase_admin.exceptions import (
    InvalidArgumentError,
    NotFoundError,
    UnavailableError,
)

from ridematch.algorithms.entities import RebalancingRecommendation, RecommendationPriority
from ridematch.core.config import settings

logger = logging.getLogger(__name__)

MAX_RETRIES: int = 3
RETRY_BASE_DELAY_SECONDS: float = 0.5

REBALANCE_CHANNEL_ID: str = "ridematch_rebalance"

_TRANSIENT_MARKERS: tuple[str, ...] = ("unavailable", "deadline exceeded", "internal", "timeout", "503", "500")
_INVALID_TOKEN_MARKERS: tuple[str, ...] = ("unregistered", "not-registered", "invalid-registration")


class NotificationError(Exception):
    """A rebalancing notification could not be delivered."""

    def __init__(self, driver_id: str, reason: str) -> None:
        self.driver_id = driver_id
        self.reason = reason
        super().__init__(f"Could not notify driver '{driver_id}': {reason}")


@dataclass
class SendResult:
    success: bool
    message_id: str | None = None
    error: str | None = None
    invalid_token: bool = False


# ---------------------------------------------------------------------------
# Firebase Admin SDK initialisation (lazy singleton)
# ---------------------------------------------------------------------------

_firebase_app: firebase_admin.App | None = None


def _ensure_firebase_initialised() -> firebase_admin.App:
    """Return the Firebase app, creating it from settings on first use.

    Raises:
        RuntimeError: If no credentials are configured.
    """
    global _firebase_app

    if _firebase_app is not None:
        return _firebase_app

    try:
        _firebase_app = firebase_admin.get_app()
        return _firebase_app
    except ValueError:
        pass  # no default app yet

    if settings.firebase_service_account_path:
        logger.info(
            "Initialising Firebase Admin SDK from %s", settings.firebase_service_account_path
        )
        cred = credentials.Certificate(settings.firebase_service_account_path)
    elif settings.firebase_credentials_json:
        logger.info("Initialising Firebase Admin SDK from inline credentials")
        cred = credentials.Certificate(json.loads(settings.firebase_credentials_json))
    else:
        raise RuntimeError(
            "Firebase credentials not configured. Set FIREBASE_SERVICE_ACCOUNT_PATH "
            "or FIREBASE_CREDENTIALS_JSON."
        )

    _firebase_app = firebase_admin.initialize_app(cred)
    return _firebase_app


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _is_transient_error(exc: Exception) -> bool:
    if isinstance(exc, UnavailableError):
        return True
    text = str(exc).lower()
    return any(marker in text for marker in _TRANSIENT_MARKERS)


def _is_invalid_token_error(exc: Exception) -> bool:
    if isinstance(exc, (InvalidArgumentError, NotFoundError)):
        return True
    text = str(exc).lower()
    return any(marker in text for marker in _INVALID_TOKEN_MARKERS)


def build_rebalancing_message(
    device_token: str,
    recommendation: RebalancingRecommendation,
) -> messaging.Message:
    """FCM message asking a driver to reposition.

    The data payload carries everything the driver app needs to route the
    driver; FCM requires every data value to be a string.
    """
    target = recommendation.target_location
    data = {
        "type": "rebalancing_recommendation",
        "driver_id": recommendation.driver_id,
        "target_zone_id": recommendation.target_zone_id,
        "target_latitude": str(target.latitude),
        "target_longitude": str(target.longitude),
        "priority": recommendation.priority.value,
        "estimated_travel_minutes": str(recommendation.estimated_travel_minutes),
        "reason": recommendation.reason,
    }
    high = recommendation.priority is RecommendationPriority.HIGH

    return messaging.Message(
        token=device_token,
        notification=messaging.Notification(
            title="High demand nearby",
            body=(
                f"Head to zone {recommendation.target_zone_id} "
                f"(about {recommendation.estimated_travel_minutes:.0f} min away)."
            ),
        ),
        data=data,
        apns=messaging.APNSConfig(
            headers={"apns-priority": "10" if high else "5"},
            payload=messaging.APNSPayload(aps=messaging.Aps(sound="default")),
        ),
        android=messaging.AndroidConfig(
            priority="high" if high else "normal",
            notification=messaging.AndroidNotification(
                sound="default",
                channel_id=REBALANCE_CHANNEL_ID,
            ),
        ),
    )


async def _send_with_retry(msg: messaging.Message) -> SendResult:
    """Send one message, retrying transient errors with exponential backoff.

    The blocking SDK call runs in a worker thread.
    """
    _ensure_firebase_initialised()

    for attempt in range(1, MAX_RETRIES + 1):
        try:
            message_id: str = await asyncio.to_thread(messaging.send, msg)
            return SendResult(success=True, message_id=message_id)
        except Exception as exc:
            if _is_invalid_token_error(exc):
                logger.warning("Invalid FCM token detected: %s", exc)
                return SendResult(success=False, error=f"Invalid token: {exc}", invalid_token=True)

            if _is_transient_error(exc) and attempt < MAX_RETRIES:
                delay = RETRY_BASE_DELAY_SECONDS * (2 ** (attempt - 1))
                logger.warning(
                    "Transient FCM error (attempt %d/%d), retrying in %.1fs: %s",
                    attempt,
                    MAX_RETRIES,
                    delay,
                    exc,
                )
                await asyncio.sleep(delay)
                continue

            logger.error("FCM send failed after %d attempts: %s", attempt, exc)
            return SendResult(success=False, error=str(exc))

    return SendResult(success=False, error=f"Failed after {MAX_RETRIES} retries")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

async def send_rebalancing_notification(
    device_token: str,
    recommendation: RebalancingRecommendation,
) -> SendResult:
    logger.info(
        "Sending rebalancing push to driver %s (zone %s, priority=%s)",
        recommendation.driver_id,
        recommendation.target_zone_id,
        recommendation.priority.value,
    )
    return await _send_with_retry(build_rebalancing_message(device_token, recommendation))


TokenLookup = Callable[[str], Awaitable[Optional[str]]]


class FcmDriverNotifier:
    """``DriverNotifier`` backed by FCM.

    Args:
        token_lookup: Async callable resolving a driver id to its device
            token (``None`` when the driver has no registered device).
    """

    def __init__(self, token_lookup: TokenLookup) -> None:
        self.token_lookup = token_lookup

    async def notify_driver(
        self, driver_id: str, recommendation: RebalancingRecommendation
    ) -> None:
        token = await self.token_lookup(driver_id)
        if not token:
            raise NotificationError(driver_id, "no registered device token")

        result = await send_rebalancing_notification(token, recommendation)
        if not result.success:
            raise NotificationError(driver_id, result.error or "unknown error")
