"""
Room Parser - Turns raw Realtime Database room snapshots into typed records.

Handles the shapes a room record takes on the wire:
- Machine lists as JSON arrays, or as objects with numeric keys (holes are null)
- Status strings as stored by the client: "In Use", "Out of Service", ...
- Push destinations as {"token": "..."} objects or bare token strings

Usage:
    from .room_parser import parse_room

    room = parse_room(snapshot_value)
    # Returns: Room, or None for a deleted room
"""
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .config import DESTINATION_KEY_MAX_LENGTH
from .log import get_logger

logger = get_logger(__name__)


class MachineStatus(Enum):
    AVAILABLE = 'Available'
    IN_USE = 'In Use'
    FINISHED = 'Finished'
    OUT_OF_SERVICE = 'Out of Service'
    UNKNOWN = 'Unknown'


# Accepted spellings, compared after lowercasing and stripping spaces/underscores
STATUS_ALIASES = {
    'available': MachineStatus.AVAILABLE,
    'inuse': MachineStatus.IN_USE,
    'finished': MachineStatus.FINISHED,
    'outofservice': MachineStatus.OUT_OF_SERVICE,
}

BUSY_STATUSES = (MachineStatus.IN_USE, MachineStatus.OUT_OF_SERVICE)

_INVALID_KEY_CHARS = re.compile(r'[.$#\[\]/]')


@dataclass(frozen=True)
class Machine:
    id: str
    name: str
    type: str
    status: MachineStatus
    finish_time: Optional[int] = None
    last_used_by: Optional[str] = None


@dataclass(frozen=True)
class WashMode:
    id: str
    name: str
    duration: int
    type: str


@dataclass(frozen=True)
class PushDestination:
    key: str
    token: str


@dataclass(frozen=True)
class Member:
    username: str
    destinations: List[PushDestination] = field(default_factory=list)
    subscriptions: Dict[str, bool] = field(default_factory=dict)

    def is_subscribed(self, machine_type: str) -> bool:
        return self.subscriptions.get(machine_type, False)


@dataclass(frozen=True)
class Room:
    name: str
    machines: List[Machine]
    modes: List[WashMode]
    members: Dict[str, Member]
    has_machines: bool = True
    has_members: bool = True

    def find_machine(self, machine_id: str) -> Optional[Machine]:
        for machine in self.machines:
            if machine.id == machine_id:
                return machine
        return None

    def machines_of_type(self, machine_type: str) -> List[Machine]:
        return [m for m in self.machines if m.type == machine_type]


def parse_status(raw_status: Any) -> MachineStatus:
    """
    Normalize a stored status string.

    Examples:
        >>> parse_status('In Use')
        <MachineStatus.IN_USE: 'In Use'>
        >>> parse_status('OutOfService')
        <MachineStatus.OUT_OF_SERVICE: 'Out of Service'>
        >>> parse_status('broken')
        <MachineStatus.UNKNOWN: 'Unknown'>
    """
    if not isinstance(raw_status, str):
        return MachineStatus.UNKNOWN
    normalized = re.sub(r'[\s_-]', '', raw_status).lower()
    return STATUS_ALIASES.get(normalized, MachineStatus.UNKNOWN)


def sanitize_destination_key(value: str) -> str:
    """
    Build a database-safe child key from a token or endpoint.

    Characters that Realtime Database keys cannot hold are replaced with '_'
    and the result is truncated.
    """
    return _INVALID_KEY_CHARS.sub('_', value)[:DESTINATION_KEY_MAX_LENGTH]


def _entries(raw: Any) -> List[Any]:
    """Values of a database collection that may be an array or a keyed object."""
    if isinstance(raw, list):
        return [item for item in raw if item is not None]
    if isinstance(raw, dict):
        return [item for item in raw.values() if item is not None]
    return []


def _optional_str(value: Any) -> Optional[str]:
    if value is None or value == '':
        return None
    return str(value)


def _parse_machine(raw: Any) -> Optional[Machine]:
    if not isinstance(raw, dict) or raw.get('id') is None:
        logger.debug(f"Dropping malformed machine entry: {raw!r}")
        return None

    finish_time = raw.get('finishTime')
    return Machine(
        id=str(raw['id']),
        name=str(raw.get('name') or f"Machine {raw['id']}"),
        type=str(raw.get('type', '')).lower(),
        status=parse_status(raw.get('status')),
        finish_time=int(finish_time) if isinstance(finish_time, (int, float)) else None,
        last_used_by=_optional_str(raw.get('lastUsedBy')),
    )


def _parse_mode(raw: Any) -> Optional[WashMode]:
    if not isinstance(raw, dict) or raw.get('id') is None:
        return None
    try:
        duration = int(raw.get('duration', 0))
    except (TypeError, ValueError):
        duration = 0
    return WashMode(
        id=str(raw['id']),
        name=str(raw.get('name', '')),
        duration=duration,
        type=str(raw.get('type', '')).lower(),
    )


def _parse_destinations(raw: Any) -> List[PushDestination]:
    if not isinstance(raw, dict):
        return []

    destinations = []
    for key, value in raw.items():
        if isinstance(value, dict):
            token = value.get('token')
        else:
            token = value
        if isinstance(token, str) and token:
            destinations.append(PushDestination(key=str(key), token=token))
    return destinations


def _parse_member(username: str, raw: Any) -> Member:
    if not isinstance(raw, dict):
        return Member(username=username)

    raw_subscriptions = raw.get('subscriptions')
    subscriptions = {}
    if isinstance(raw_subscriptions, dict):
        subscriptions = {str(k): v is True for k, v in raw_subscriptions.items()}

    return Member(
        username=username,
        destinations=_parse_destinations(raw.get('pushSubscriptions')),
        subscriptions=subscriptions,
    )


def parse_room(raw_room: Any) -> Optional[Room]:
    """
    Parse a room snapshot value.

    Args:
        raw_room: Value of /rooms/{roomId} as returned by the database

    Returns:
        Room, or None if the snapshot is empty (room deleted or never written)
    """
    if not isinstance(raw_room, dict):
        return None

    raw_machines = raw_room.get('machines')
    raw_members = raw_room.get('members')

    machines = [m for m in map(_parse_machine, _entries(raw_machines)) if m is not None]
    modes = [m for m in map(_parse_mode, _entries(raw_room.get('modes'))) if m is not None]
    members = {}
    if isinstance(raw_members, dict):
        members = {
            str(username): _parse_member(str(username), data)
            for username, data in raw_members.items()
        }

    return Room(
        name=str(raw_room.get('name', '')),
        machines=machines,
        modes=modes,
        members=members,
        has_machines=bool(raw_machines),
        has_members=bool(raw_members),
    )
