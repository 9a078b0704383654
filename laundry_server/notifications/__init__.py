"""
Laundry Room Notifications Backend Module

This module watches laundry room records in the Firebase Realtime Database
and sends FCM push notifications for room events:
- Machine finished (to the user who started it)
- Washer/dryer available again (to subscribed members, one-shot)

Usage:
    python -m laundry_server.notifications.db_handler
"""

from .fcm_service import FcmSender, send_multicast, is_stale_error
from .config import NOTIFICATION_TYPES
from .notifier import (
    AvailabilityNotification,
    CompletionNotification,
    NotifierResult,
    handle_room_update,
    plan_notifications,
)
from .room_parser import parse_room, parse_status, MachineStatus
from .room_store import RoomStore

__all__ = [
    'FcmSender',
    'send_multicast',
    'is_stale_error',
    'NOTIFICATION_TYPES',
    'AvailabilityNotification',
    'CompletionNotification',
    'NotifierResult',
    'handle_room_update',
    'plan_notifications',
    'parse_room',
    'parse_status',
    'MachineStatus',
    'RoomStore',
]
