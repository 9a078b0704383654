from __future__ import annotations

from types import SimpleNamespace

from conftest import FakeSender, FakeStore, machine, member, room
from laundry_server.notifications.db_handler import RoomMirror, RoomUpdateListener, set_path


def _event(event_type, path, data):
    return SimpleNamespace(event_type=event_type, path=path, data=data)


def test_set_path_copies_instead_of_mutating():
    original = {"a": {"b": 1}, "c": [1, 2]}

    updated = set_path(original, ["a", "b"], 2)

    assert updated == {"a": {"b": 2}, "c": [1, 2]}
    assert original == {"a": {"b": 1}, "c": [1, 2]}
    assert updated["c"] is original["c"]


def test_set_path_handles_list_indices_and_deletes():
    assert set_path([{"s": "x"}, {"s": "y"}], ["1", "s"], "z") == [{"s": "x"}, {"s": "z"}]
    assert set_path([1, 2], ["1"], None) == [1]
    assert set_path({"a": {"b": 1}}, ["a", "b"], None) is None


def test_initial_load_reports_rooms_as_created():
    mirror = RoomMirror()

    changes = mirror.apply("put", "/", {"11111111": {"name": "A"}, "22222222": {"name": "B"}})

    assert [(room_id, before) for room_id, before, _ in changes] == [("11111111", None), ("22222222", None)]


def test_put_inside_a_room_gives_before_and_after():
    mirror = RoomMirror()
    mirror.apply("put", "/", {"11111111": room([machine(1, "In Use")], {})})

    changes = mirror.apply("put", "/11111111/machines/0/status", "Finished")

    room_id, before, after = changes[0]
    assert room_id == "11111111"
    assert before["machines"][0]["status"] == "In Use"
    assert after["machines"][0]["status"] == "Finished"


def test_patch_with_multi_path_keys():
    mirror = RoomMirror()
    mirror.apply("put", "/", {"11111111": room([machine(1, "In Use")], {"alice": member("t1")})})

    changes = mirror.apply("patch", "/11111111", {
        "machines/0/status": "Available",
        "members/alice/pushSubscriptions/key-t1": None,
    })

    _, _, after = changes[0]
    assert after["machines"][0]["status"] == "Available"
    assert "pushSubscriptions" not in after["members"]["alice"]
    assert after["members"]["alice"]["subscriptions"] == {"washer": False, "dryer": False}


def test_unchanged_write_reports_nothing():
    mirror = RoomMirror()
    mirror.apply("put", "/", {"11111111": {"name": "A"}})

    assert mirror.apply("put", "/11111111/name", "A") == []


def test_deleting_a_room():
    mirror = RoomMirror()
    mirror.apply("put", "/", {"11111111": {"name": "A"}})

    assert mirror.apply("put", "/11111111", None) == [("11111111", {"name": "A"}, None)]


def test_listener_runs_notifier_for_changed_room():
    sender = FakeSender()
    stores = {}

    def store_factory(room_id):
        return stores.setdefault(room_id, FakeStore())

    listener = RoomUpdateListener(sender=sender, store_factory=store_factory)
    members = {"alice": member("t1"), "bob": member("t2", washer=True)}
    listener.on_event(_event("put", "/", {
        "11111111": room([machine(1, "In Use", last_used_by="alice")], members),
    }))
    assert sender.calls == []

    listener.on_event(_event("patch", "/11111111/machines/0", {"status": "Finished"}))
    listener.on_event(_event("put", "/11111111/machines/0/status", "Available"))

    assert [n.notification_type for n, _ in sender.calls] == ["machine_finished"]
    listener.on_event(_event("put", "/11111111/machines/0/status", "In Use"))
    listener.on_event(_event("put", "/11111111/machines/0/status", "Available"))
    assert [n.notification_type for n, _ in sender.calls] == ["machine_finished", "machine_available"]
    assert stores["11111111"].cleared == [("bob", "washer")]


class BrokenStore(FakeStore):
    def __init__(self):
        super().__init__()
        self.broken = True

    def clear_subscription(self, username, machine_type):
        if self.broken:
            self.broken = False
            raise RuntimeError("unexpected")
        super().clear_subscription(username, machine_type)


def test_listener_keeps_running_after_notifier_error(caplog):
    sender = FakeSender()
    store = BrokenStore()
    listener = RoomUpdateListener(sender=sender, store_factory=lambda room_id: store)
    members = {"alice": member("t1"), "bob": member("t2", washer=True)}
    listener.on_event(_event("put", "/", {"11111111": room([machine(1, "In Use", last_used_by="alice")], members)}))

    listener.on_event(_event("put", "/11111111/machines/0/status", "Available"))
    assert "Error handling update for room 11111111" in caplog.text

    listener.on_event(_event("put", "/11111111/machines/0/status", "In Use"))
    listener.on_event(_event("put", "/11111111/machines/0/status", "Finished"))

    assert [n.notification_type for n, _ in sender.calls] == ["machine_available", "machine_finished"]
    assert store.cleared == []
