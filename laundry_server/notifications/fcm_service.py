"""
FCM Service - Firebase Cloud Messaging operations

This module handles sending push notifications via Firebase Admin SDK and
classifying per-device delivery failures.
"""
import os
import time
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

import firebase_admin
from firebase_admin import credentials, exceptions, messaging

from .config import (
    FCM_MAX_TOKENS_PER_MULTICAST,
    FIREBASE_CONFIG,
    FIREBASE_CREDENTIALS_PATH,
    NOTIFICATION_ICON,
)
from .log import get_logger

logger = get_logger(__name__)

# HTTP statuses meaning the device token will never work again
STALE_HTTP_STATUSES = (404, 410)

# Initialize Firebase Admin SDK
_app = None


def _get_firebase_app():
    """Initialize Firebase Admin SDK if not already initialized."""
    global _app
    if _app is not None:
        return _app

    if not os.path.exists(FIREBASE_CREDENTIALS_PATH):
        raise FileNotFoundError(
            f"Firebase credentials file not found at: {FIREBASE_CREDENTIALS_PATH}\n"
            "Please download it from Firebase Console > Project Settings > Service Accounts"
        )

    options = {}
    if FIREBASE_CONFIG['database_url']:
        options['databaseURL'] = FIREBASE_CONFIG['database_url']

    cred = credentials.Certificate(FIREBASE_CREDENTIALS_PATH)
    _app = firebase_admin.initialize_app(cred, options)
    logger.info(f"Firebase Admin SDK initialized for project: {_app.project_id}")
    return _app


class DeliveryStatus(Enum):
    DELIVERED = 'delivered'
    STALE = 'stale'
    FAILED = 'failed'


@dataclass(frozen=True)
class DeliveryResult:
    token: str
    status: DeliveryStatus
    message_id: Optional[str] = None
    error: Optional[Exception] = None


def _names_token(error: Exception) -> bool:
    # INVALID_ARGUMENT also covers payload errors; only a rejected token is stale
    return 'registration token' in str(error).lower()


def is_stale_error(error: Optional[Exception]) -> bool:
    """
    Check if a send failure means the device token is permanently gone.

    Args:
        error: Exception reported by FCM for one token

    Returns:
        True for unregistered tokens, tokens from another sender, malformed
        registration tokens, or a 404/410 HTTP response. False for everything
        else (quota, outages, invalid payloads, ...)
    """
    if isinstance(error, (messaging.UnregisteredError, messaging.SenderIdMismatchError)):
        return True
    if isinstance(error, exceptions.InvalidArgumentError) and _names_token(error):
        return True
    if isinstance(error, exceptions.FirebaseError):
        response = error.http_response
        return getattr(response, 'status_code', None) in STALE_HTTP_STATUSES
    return False


def _classify(token: str, send_response) -> DeliveryResult:
    if send_response.success:
        return DeliveryResult(token, DeliveryStatus.DELIVERED, message_id=send_response.message_id)
    error = send_response.exception
    if is_stale_error(error):
        return DeliveryResult(token, DeliveryStatus.STALE, error=error)
    return DeliveryResult(token, DeliveryStatus.FAILED, error=error)


def _build_data(data: Optional[dict]) -> Dict[str, str]:
    # FCM data payload values must be strings
    payload_data = {'timestamp': str(int(time.time()))}
    if data:
        payload_data.update({k: str(v) for k, v in data.items() if v is not None})
    return payload_data


def build_message(token: str, title: str, body: str, data: dict = None) -> messaging.Message:
    """Build a message for one device carrying title, body and icon for every platform."""
    return messaging.Message(
        notification=messaging.Notification(
            title=title,
            body=body,
        ),
        data=_build_data(data),
        token=token,
        # Android specific configuration
        android=messaging.AndroidConfig(
            priority='high',
            notification=messaging.AndroidNotification(
                channel_id='laundry_notifications',
                priority='high',
            ),
        ),
        # Browsers (web push) use the icon
        webpush=messaging.WebpushConfig(
            notification=messaging.WebpushNotification(
                title=title,
                body=body,
                icon=NOTIFICATION_ICON,
            ),
        ),
        # iOS (APNs) specific configuration
        apns=messaging.APNSConfig(
            payload=messaging.APNSPayload(
                aps=messaging.Aps(
                    alert=messaging.ApsAlert(
                        title=title,
                        body=body,
                    ),
                    sound='default',
                ),
            ),
        ),
    )


def send_multicast(tokens: List[str], title: str, body: str, data: dict = None) -> List[DeliveryResult]:
    """
    Send a notification to multiple devices.

    Each token gets its own message; FCM sends them concurrently and the
    call returns once every attempt has settled.

    Args:
        tokens: List of FCM device tokens
        title: Notification title
        body: Notification body
        data: Additional data payload to include

    Returns:
        list[DeliveryResult]: one result per token, in input order
    """
    if not tokens:
        return []

    _get_firebase_app()

    results = []
    for start in range(0, len(tokens), FCM_MAX_TOKENS_PER_MULTICAST):
        chunk = tokens[start:start + FCM_MAX_TOKENS_PER_MULTICAST]
        messages = [build_message(token, title, body, data) for token in chunk]
        try:
            response = messaging.send_each(messages)
        except exceptions.FirebaseError as e:
            logger.error(f"Multicast to {len(chunk)} device(s) failed: {type(e).__name__}: {e}")
            results.extend(DeliveryResult(t, DeliveryStatus.FAILED, error=e) for t in chunk)
            continue

        logger.info(f"Multicast sent: {response.success_count} success, {response.failure_count} failed")
        results.extend(_classify(t, r) for t, r in zip(chunk, response.responses))
    return results


class FcmSender:
    """Push delivery through FCM, in the shape the notifier expects."""

    def send(self, notification, tokens: List[str]) -> List[DeliveryResult]:
        return send_multicast(tokens, notification.title, notification.body, notification.data)
