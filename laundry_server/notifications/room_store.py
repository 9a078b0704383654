"""
Room Store - Targeted reads and writes against one room record.

A RoomStore is an explicit handle for /rooms/{roomId}. It only touches
member-scoped fields; machine state is owned by the clients.
"""
from typing import Iterable, Optional, Tuple

from firebase_admin import db

from .config import FIREBASE_CONFIG, MACHINE_TYPES
from .fcm_service import _get_firebase_app
from .log import get_logger
from .room_parser import sanitize_destination_key

logger = get_logger(__name__)


def member_path(username: str, *parts: str) -> str:
    return '/'.join(('members', username) + parts)


class RoomStore:
    """Handle for a single room record."""

    def __init__(self, room_id: str, reference=None):
        self.room_id = room_id
        self._reference = reference

    @property
    def reference(self):
        if self._reference is None:
            path = f"{FIREBASE_CONFIG['rooms_path'].rstrip('/')}/{self.room_id}"
            self._reference = db.reference(path, app=_get_firebase_app())
        return self._reference

    def clear_subscription(self, username: str, machine_type: str) -> None:
        """Turn off a member's availability subscription for one machine type."""
        self.reference.child(member_path(username, 'subscriptions', machine_type)).set(False)
        logger.info(f"Unsubscribed {username} from {machine_type} availability in room {self.room_id}")

    def remove_destinations(self, stale: Iterable[Tuple[str, str]]) -> int:
        """
        Delete push destinations in a single multi-path write.

        Args:
            stale: (username, destination key) pairs

        Returns:
            int: number of destinations removed (0 means nothing was written)
        """
        updates = {
            member_path(username, 'pushSubscriptions', key): None
            for username, key in stale
        }
        if not updates:
            return 0

        self.reference.update(updates)
        logger.info(f"Cleaned up {len(updates)} stale subscription(s) in room {self.room_id}")
        return len(updates)

    def register_member(self, username: str) -> bool:
        """
        Create a member entry with both subscriptions off, if it does not exist.

        Returns:
            bool: True if the member was created
        """
        member_ref = self.reference.child(member_path(username))
        if member_ref.get() is not None:
            return False

        member_ref.set({'subscriptions': {machine_type: False for machine_type in MACHINE_TYPES}})
        logger.info(f"Registered member {username} in room {self.room_id}")
        return True

    def add_destination(self, username: str, token: str) -> str:
        """
        Store a device token for a member.

        Re-registering the same token overwrites the same entry.

        Returns:
            str: the database key the token was stored under
        """
        if not username or not token:
            raise ValueError("Missing required parameters: username or token.")

        key = sanitize_destination_key(token)
        self.reference.child(member_path(username, 'pushSubscriptions', key)).set({'token': token})
        logger.info(f"Subscription added for user {username} in room {self.room_id}")
        return key

    def update_subscriptions(self, username: str, **flags: Optional[bool]) -> dict:
        """
        Set availability subscriptions for a member.

        Example:
            store.update_subscriptions('alice', washer=True)

        Returns:
            dict: the flags that were written
        """
        unknown = set(flags) - set(MACHINE_TYPES)
        if unknown:
            raise ValueError(f"Unknown machine type(s): {', '.join(sorted(unknown))}")

        changes = {k: bool(v) for k, v in flags.items() if v is not None}
        if changes:
            self.reference.child(member_path(username, 'subscriptions')).update(changes)
        return changes
