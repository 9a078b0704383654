from __future__ import annotations

import pytest
from firebase_admin import exceptions

from laundry_server.notifications.fcm_service import DeliveryResult, DeliveryStatus


def machine(machine_id, status, machine_type="washer", last_used_by=None, name=None):
    return {
        "id": machine_id,
        "name": name or f"{machine_type.title()} {machine_id}",
        "type": machine_type,
        "status": status,
        "finishTime": None,
        "lastUsedBy": last_used_by,
    }


def member(*tokens, washer=False, dryer=False):
    return {
        "pushSubscriptions": {f"key-{token}": {"token": token} for token in tokens},
        "subscriptions": {"washer": washer, "dryer": dryer},
    }


def room(machines, members):
    return {"name": "Block C", "machines": machines, "modes": [], "members": members}


class FakeSender:
    def __init__(self, statuses=None, error=None):
        self.statuses = statuses or {}
        self.error = error
        self.calls = []

    def send(self, notification, tokens):
        self.calls.append((notification, list(tokens)))
        if self.error is not None:
            raise self.error
        return [
            DeliveryResult(token, self.statuses.get(token, DeliveryStatus.DELIVERED))
            for token in tokens
        ]

    @property
    def sent_tokens(self):
        return [token for _, tokens in self.calls for token in tokens]


class FakeStore:
    def __init__(self, fail_clear=False, fail_remove=False):
        self.fail_clear = fail_clear
        self.fail_remove = fail_remove
        self.cleared = []
        self.removed = []

    def clear_subscription(self, username, machine_type):
        if self.fail_clear:
            raise exceptions.UnavailableError("database unavailable")
        self.cleared.append((username, machine_type))

    def remove_destinations(self, stale):
        if self.fail_remove:
            raise exceptions.UnavailableError("database unavailable")
        stale = list(stale)
        self.removed.append(stale)
        return len(stale)

    @property
    def writes(self):
        return len(self.cleared) + len(self.removed)


@pytest.fixture
def sender():
    return FakeSender()


@pytest.fixture
def store():
    return FakeStore()
