"""
Database Handler - Listens for room changes and triggers FCM notifications

This service streams every change under the rooms path of the Firebase
Realtime Database, keeps a local mirror of all rooms so each change can be
seen as a (before, after) pair, and runs the room-update notifier for every
room the change touched.

Usage:
    python -m laundry_server.notifications.db_handler

Environment variables:
    FIREBASE_DATABASE_URL - Realtime Database URL (required)
    FIREBASE_CREDENTIALS_PATH - Service account key file
    ROOMS_PATH - Path holding the room records (default: /rooms)
    LOG_LEVEL - Logging level (default: INFO)
"""
import threading
from typing import Any, List, Optional, Tuple

from firebase_admin import db

from .config import FIREBASE_CONFIG
from .fcm_service import FcmSender, _get_firebase_app
from .log import get_logger
from .notifier import handle_room_update
from .room_store import RoomStore

logger = get_logger(__name__)


def split_path(path: str) -> List[str]:
    """'/abc/machines/0' -> ['abc', 'machines', '0']"""
    return [part for part in (path or '').split('/') if part]


def set_path(node: Any, segments: List[str], value: Any) -> Any:
    """
    Return a copy of `node` with `value` stored at `segments`.

    Follows Realtime Database semantics: None deletes, and a container left
    empty disappears. Nodes along the path are copied, siblings are shared,
    so earlier snapshots stay untouched.
    """
    if not segments:
        return value

    head, rest = segments[0], segments[1:]

    if isinstance(node, list) and head.isdigit():
        index = int(head)
        items = list(node)
        if index >= len(items):
            items.extend([None] * (index + 1 - len(items)))
        items[index] = set_path(items[index], rest, value)
        while items and items[-1] is None:
            items.pop()
        return items or None

    if isinstance(node, list):
        node = {str(i): item for i, item in enumerate(node) if item is not None}
    elif not isinstance(node, dict):
        node = {}
    else:
        node = dict(node)

    child = set_path(node.get(head), rest, value)
    if child is None or child == {} or child == []:
        node.pop(head, None)
    else:
        node[head] = child
    return node or None


class RoomMirror:
    """Local copy of every room, updated from streamed events."""

    def __init__(self):
        self.rooms = {}

    def apply(self, event_type: str, path: str, data: Any) -> List[Tuple[str, Optional[dict], Optional[dict]]]:
        """
        Apply one streamed event.

        Args:
            event_type: 'put' replaces the value at path, 'patch' merges children
            path: Event path relative to the rooms path
            data: Event payload

        Returns:
            (room_id, before, after) for every room whose value changed
        """
        segments = split_path(path)
        if event_type == 'patch' and isinstance(data, dict):
            updates = [(segments + split_path(key), value) for key, value in data.items()]
        else:
            updates = [(segments, data)]

        previous = self.rooms
        rooms = previous
        touched = []
        for update_segments, value in updates:
            rooms = set_path(rooms, update_segments, value) or {}
            if isinstance(rooms, list):
                rooms = {str(i): room for i, room in enumerate(rooms) if room is not None}
            if update_segments:
                touched.append(update_segments[0])
            else:
                touched.extend(list(previous) + list(rooms))
        self.rooms = rooms

        changes = []
        for room_id in dict.fromkeys(touched):
            before, after = previous.get(room_id), rooms.get(room_id)
            if before != after:
                changes.append((room_id, before, after))
        return changes


class RoomUpdateListener:
    """Runs the notifier for every room changed by a database event."""

    def __init__(self, sender=None, store_factory=RoomStore):
        self.mirror = RoomMirror()
        self.sender = sender or FcmSender()
        self.store_factory = store_factory

    def on_event(self, event):
        """Callback for db.Reference.listen()."""
        logger.debug(f"Event received - Type: {event.event_type}, Path: {event.path}")

        try:
            changes = self.mirror.apply(event.event_type, event.path, event.data)
        except (TypeError, AttributeError) as e:
            logger.error(f"Could not apply {event.event_type} event at {event.path}: {e}")
            return

        for room_id, before, after in changes:
            try:
                handle_room_update(before, after, room_id, self.sender, self.store_factory(room_id))
            except Exception:
                logger.exception(f"Error handling update for room {room_id}")


def start():
    """Start the room listener service."""
    logger.info("Starting Laundry Notification Service...")

    if not FIREBASE_CONFIG['database_url']:
        raise ValueError("FIREBASE_DATABASE_URL is not set")

    rooms_path = FIREBASE_CONFIG['rooms_path']
    logger.info(f"Listening to {FIREBASE_CONFIG['database_url']}{rooms_path}")

    listener = RoomUpdateListener()
    registration = db.reference(rooms_path, app=_get_firebase_app()).listen(listener.on_event)
    stopped = threading.Event()

    try:
        logger.info("Listening for room changes (Ctrl+C to stop)...")
        while not stopped.wait(1):
            pass
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    finally:
        registration.close()


if __name__ == '__main__':
    start()
