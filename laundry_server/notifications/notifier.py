"""
Room-Update Notifier - Decides who to notify when a room record changes.

Given the room snapshot before and after a write, it:
- notifies the user who started a machine once that machine finishes
- notifies subscribed members when a machine type goes from fully occupied
  to having a free unit, then clears their subscription (one-shot)
- removes push destinations that FCM reports as permanently gone

Usage:
    from .notifier import handle_room_update

    result = handle_room_update(before, after, room_id, FcmSender(), RoomStore(room_id))
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Union

from firebase_admin import exceptions

from .config import MACHINE_TYPES, NOTIFICATION_TYPES
from .fcm_service import DeliveryStatus
from .log import get_logger
from .room_parser import BUSY_STATUSES, MachineStatus, PushDestination, Room, parse_room

logger = get_logger(__name__)


def type_label(machine_type: str) -> str:
    """'washer' -> 'Washer'"""
    return machine_type[:1].upper() + machine_type[1:]


@dataclass(frozen=True)
class CompletionNotification:
    """A machine finished the cycle started by `username`."""
    username: str
    destinations: Tuple[PushDestination, ...]
    machine_id: str
    machine_name: str

    notification_type = 'machine_finished'

    @property
    def title(self) -> str:
        return NOTIFICATION_TYPES[self.notification_type]['title'].format(machine_name=self.machine_name)

    @property
    def body(self) -> str:
        return NOTIFICATION_TYPES[self.notification_type]['body']

    @property
    def data(self) -> dict:
        return {'type': self.notification_type, 'machine_id': self.machine_id}


@dataclass(frozen=True)
class AvailabilityNotification:
    """A machine of `machine_type` became free for a subscribed member."""
    username: str
    destinations: Tuple[PushDestination, ...]
    machine_type: str

    notification_type = 'machine_available'

    @property
    def title(self) -> str:
        template = NOTIFICATION_TYPES[self.notification_type]['title']
        return template.format(type_label=type_label(self.machine_type))

    @property
    def body(self) -> str:
        return NOTIFICATION_TYPES[self.notification_type]['body'].format(machine_type=self.machine_type)

    @property
    def data(self) -> dict:
        return {'type': self.notification_type, 'machine_type': self.machine_type}


Notification = Union[CompletionNotification, AvailabilityNotification]


@dataclass
class NotifierResult:
    room_id: str
    skipped_reason: Optional[str] = None
    notifications: List[Notification] = field(default_factory=list)
    delivered: int = 0
    failed: int = 0
    stale: List[Tuple[str, str]] = field(default_factory=list)
    stale_removed: int = 0
    flags_cleared: List[Tuple[str, str]] = field(default_factory=list)


def skip_reason(before: Optional[Room], after: Optional[Room]) -> Optional[str]:
    """Why a change must not produce notifications, or None if it may."""
    if after is None:
        return 'room deleted'
    if before is None or not before.has_machines or not before.has_members:
        return 'room created or incomplete'
    return None


def detect_finished(before: Room, after: Room) -> List[CompletionNotification]:
    """Machines that went In Use -> Finished whose last user can be reached."""
    notifications = []
    for machine in after.machines:
        previous = before.find_machine(machine.id)
        if previous is None:
            continue
        if previous.status != MachineStatus.IN_USE or machine.status != MachineStatus.FINISHED:
            continue

        member = after.members.get(machine.last_used_by) if machine.last_used_by else None
        if member is None or not member.destinations:
            logger.debug(f"{machine.name} finished but {machine.last_used_by!r} has no push destinations")
            continue

        notifications.append(CompletionNotification(
            username=member.username,
            destinations=tuple(member.destinations),
            machine_id=machine.id,
            machine_name=machine.name,
        ))
    return notifications


def became_available(before: Room, after: Room, machine_type: str) -> bool:
    """True only on the transition from every unit busy to at least one free."""
    before_machines = before.machines_of_type(machine_type)
    after_machines = after.machines_of_type(machine_type)
    if not before_machines or not after_machines:
        return False

    was_busy = all(m.status in BUSY_STATUSES for m in before_machines)
    is_available = any(m.status == MachineStatus.AVAILABLE for m in after_machines)
    return was_busy and is_available


def detect_availability(before: Room, after: Room, machine_type: str) -> List[AvailabilityNotification]:
    if not became_available(before, after, machine_type):
        return []

    return [
        AvailabilityNotification(
            username=member.username,
            destinations=tuple(member.destinations),
            machine_type=machine_type,
        )
        for member in after.members.values()
        if member.is_subscribed(machine_type) and member.destinations
    ]


def plan_notifications(raw_before, raw_after) -> List[Notification]:
    """
    Decide every notification a room change calls for.

    Pure function of the two snapshots: calling it twice with the same
    input gives the same plan.

    Args:
        raw_before: Room snapshot value before the write (None if absent)
        raw_after: Room snapshot value after the write (None if deleted)

    Returns:
        Completion notifications first, then availability notifications
        for each machine type in MACHINE_TYPES order
    """
    before, after = parse_room(raw_before), parse_room(raw_after)
    if skip_reason(before, after):
        return []
    return _plan(before, after)


def _plan(before: Room, after: Room) -> List[Notification]:
    plan: List[Notification] = list(detect_finished(before, after))
    for machine_type in MACHINE_TYPES:
        plan.extend(detect_availability(before, after, machine_type))
    return plan


def _deliver(notification: Notification, sender, result: NotifierResult) -> List[Tuple[str, str]]:
    """
    Send one notification to all destinations of its recipient.

    Returns:
        (username, destination key) pairs reported as permanently gone
    """
    keys_by_token: Dict[str, List[str]] = {}
    for destination in notification.destinations:
        keys_by_token.setdefault(destination.token, []).append(destination.key)
    tokens = list(keys_by_token)

    try:
        outcomes = sender.send(notification, tokens)
    except Exception as e:
        logger.error(
            f"Failed to send {notification.notification_type} to {notification.username}: "
            f"{type(e).__name__}: {e}"
        )
        result.failed += len(tokens)
        return []

    stale = []
    for outcome in outcomes:
        if outcome.status == DeliveryStatus.DELIVERED:
            result.delivered += 1
        elif outcome.status == DeliveryStatus.STALE:
            keys = keys_by_token.get(outcome.token, [])
            logger.info(f"Subscription for {notification.username} ({', '.join(keys)}) is stale, marking for removal.")
            stale.extend((notification.username, key) for key in keys)
        else:
            result.failed += 1
            logger.warning(f"Failed to send notification to {notification.username}: {outcome.error}")
    return stale


def handle_room_update(raw_before, raw_after, room_id: str, sender, store) -> NotifierResult:
    """
    React to one write of a room record.

    Never raises for delivery or write failures; they are logged and the
    stale destinations that could be identified are removed in one write.

    Args:
        raw_before: Room snapshot value before the write
        raw_after: Room snapshot value after the write
        room_id: Room key under the rooms path
        sender: Object with send(notification, tokens) -> list[DeliveryResult]
        store: RoomStore (or compatible) for this room

    Returns:
        NotifierResult summarizing what was sent and written
    """
    result = NotifierResult(room_id=room_id)
    before, after = parse_room(raw_before), parse_room(raw_after)

    reason = skip_reason(before, after)
    if reason:
        logger.info(f"Room {room_id}: {reason}, skipping notification logic.")
        result.skipped_reason = reason
        return result

    result.notifications = _plan(before, after)
    stale: Dict[Tuple[str, str], None] = {}

    for notification in result.notifications:
        for item in _deliver(notification, sender, result):
            stale[item] = None

        if isinstance(notification, AvailabilityNotification):
            try:
                store.clear_subscription(notification.username, notification.machine_type)
                result.flags_cleared.append((notification.username, notification.machine_type))
            except (exceptions.FirebaseError, ValueError) as e:
                logger.error(f"Failed to unsubscribe {notification.username} from {notification.machine_type}: {e}")

    result.stale = list(stale)
    if result.stale:
        try:
            result.stale_removed = store.remove_destinations(result.stale)
        except (exceptions.FirebaseError, ValueError) as e:
            logger.error(f"Failed to clean up {len(result.stale)} stale subscription(s) in room {room_id}: {e}")

    logger.info(
        f"Room {room_id}: {len(result.notifications)} notification(s), "
        f"{result.delivered} delivered, {result.failed} failed, {result.stale_removed} stale removed"
    )
    return result
