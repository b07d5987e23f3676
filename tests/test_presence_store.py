from __future__ import annotations

import logging

import pytest

from devbridge.models.messages import HeartbeatPayload, StatusReport
from devbridge.presence.store import PresenceStore


def test_first_heartbeat_registers_online_device(store: PresenceStore, clock) -> None:
    device = store.upsert("lamp-1", {"name": "Lamp", "status": "off"})

    assert device.id == "lamp-1"
    assert device.name == "Lamp"
    assert device.status == "off"
    assert device.online is True
    assert device.last_seen == clock.now
    assert device.registered_at == clock.now
    assert [d.id for d in store.list()] == ["lamp-1"]


def test_unknown_device_is_not_found(store: PresenceStore) -> None:
    assert store.get("ghost") is None
    assert "ghost" not in store


def test_empty_device_id_rejected(store: PresenceStore) -> None:
    with pytest.raises(ValueError):
        store.upsert("", {"name": "Nameless"})
    with pytest.raises(ValueError):
        store.upsert("   ", {})


def test_sparse_heartbeat_keeps_known_fields(store: PresenceStore) -> None:
    store.upsert(
        "lamp-1",
        {
            "name": "Lamp",
            "ip": "10.0.0.7",
            "capabilities": ["relay_control", "voice_commands"],
            "voice_enabled": True,
            "type": "registration",
        },
    )
    # Later heartbeat omits name/capabilities and sends a blank address.
    device = store.upsert("lamp-1", {"status": "on", "ip": ""})

    assert device.name == "Lamp"
    assert device.address == "10.0.0.7"
    assert device.capabilities == frozenset({"relay_control", "voice_commands"})
    assert device.features == {"voice": True}
    assert device.status == "on"


def test_heartbeat_with_empty_capabilities_does_not_erase(store: PresenceStore) -> None:
    store.upsert("lamp-1", {"capabilities": ["relay_control"]})
    device = store.upsert("lamp-1", {"capabilities": []})

    assert device.capabilities == frozenset({"relay_control"})


def test_feature_flags_merge(store: PresenceStore) -> None:
    store.upsert("lamp-1", {"voice_enabled": True})
    device = store.upsert("lamp-1", HeartbeatPayload.model_validate({"voice_enabled": False}))

    assert device.features == {"voice": False}


def test_list_is_insertion_ordered_snapshot(store: PresenceStore) -> None:
    store.upsert("b", {})
    store.upsert("a", {})
    snapshot = store.list()

    store.upsert("c", {})
    store.upsert("a", {"status": "on"})

    assert [d.id for d in snapshot] == ["b", "a"]
    assert snapshot[1].status is None
    assert [d.id for d in store.list()] == ["b", "a", "c"]


def test_record_status_for_unknown_device_is_dropped(store: PresenceStore) -> None:
    assert store.record_status("ghost", "on") is None
    assert store.get("ghost") is None


def test_record_status_updates_without_touching_liveness(store: PresenceStore, clock) -> None:
    store.upsert("lamp-1", {"status": "off"})
    seen = clock.now
    clock.advance(10)

    device = store.record_status("lamp-1", StatusReport.model_validate({"status": "on", "ip_address": "10.0.0.9"}))

    assert device is not None
    assert device.status == "on"
    assert device.address == "10.0.0.9"
    assert device.last_seen == seen


def test_sweep_marks_stale_devices_offline(store: PresenceStore, clock, caplog) -> None:
    store.upsert("lamp-1", {})
    clock.advance(30)
    store.upsert("lamp-2", {})
    clock.advance(31)

    with caplog.at_level(logging.WARNING):
        assert store.sweep_stale(clock.now, 60) == 1

    assert store.get("lamp-1").online is False
    assert store.get("lamp-2").online is True
    assert "lamp-1 marked as offline" in caplog.text


def test_sweep_is_idempotent(store: PresenceStore, clock) -> None:
    store.upsert("lamp-1", {"name": "Lamp"})
    clock.advance(120)

    assert store.sweep_stale(clock.now, 60) == 1
    assert store.sweep_stale(clock.now, 60) == 0
    # Metadata survives the outage.
    assert store.get("lamp-1").name == "Lamp"


def test_exact_threshold_is_not_stale(store: PresenceStore, clock) -> None:
    store.upsert("lamp-1", {})
    clock.advance(60)

    assert store.sweep_stale(clock.now, 60) == 0


def test_heartbeat_resets_staleness_window(store: PresenceStore, clock) -> None:
    store.upsert("lamp-1", {})
    clock.advance(50)
    store.upsert("lamp-1", {})
    clock.advance(50)

    assert store.sweep_stale(clock.now, 60) == 0
    assert store.get("lamp-1").online is True


def test_heartbeat_brings_device_back_online(store: PresenceStore, clock, caplog) -> None:
    store.upsert("lamp-1", {})
    clock.advance(90)
    store.sweep_stale(clock.now, 60)

    with caplog.at_level(logging.INFO):
        device = store.upsert("lamp-1", {})

    assert device.online is True
    assert "back online" in caplog.text


def test_touch_refreshes_known_device_only(store: PresenceStore, clock) -> None:
    store.upsert("lamp-1", {})
    clock.advance(90)
    store.sweep_stale(clock.now, 60)

    device = store.touch("lamp-1")

    assert device is not None
    assert device.online is True
    assert device.last_seen == clock.now
    assert store.touch("ghost") is None
