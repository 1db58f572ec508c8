from __future__ import annotations

import pytest

from botgate.core.errors import (
    InvalidCommandNameError,
    PermissionAlreadyGrantedError,
    PermissionNotFoundError,
)
from botgate.core.permissions import ACTION_ALLOW, ACTION_DISALLOW, PermissionRegistry

OWNER = "owner@s.whatsapp.net"
USER = "userx@s.whatsapp.net"


def test_allow_then_disallow_round_trip(clock):
    registry = PermissionRegistry(clock=clock)
    record = registry.allow(USER, "Ping", actor=OWNER)
    assert record.action == ACTION_ALLOW
    assert record.command == "ping"
    assert record.timestamp == clock()
    assert registry.is_granted(USER, "ping")
    assert registry.is_granted("UserX:3@s.whatsapp.net", "PING")

    registry.disallow(USER, "ping", actor=OWNER)
    assert not registry.is_granted(USER, "ping")
    assert registry.all_grants() == {}
    assert [r.action for r in registry.history()] == [ACTION_DISALLOW, ACTION_ALLOW]


def test_failures_leave_state_untouched():
    registry = PermissionRegistry()
    with pytest.raises(PermissionNotFoundError):
        registry.disallow(USER, "ping", actor=OWNER)
    assert registry.history() == []
    assert registry.dirty is False

    registry.allow(USER, "ping", actor=OWNER)
    with pytest.raises(PermissionAlreadyGrantedError):
        registry.allow(USER, "ping", actor=OWNER)
    with pytest.raises(InvalidCommandNameError):
        registry.allow(USER, "not a command", actor=OWNER)
    with pytest.raises(InvalidCommandNameError):
        registry.allow(USER, "x" * 51, actor=OWNER)
    assert len(registry.history()) == 1
    assert registry.granted_commands(USER) == ["ping"]


def test_audit_ring_evicts_oldest():
    registry = PermissionRegistry(max_audit_records=3)
    for name in ("a1", "a2", "a3", "a4", "a5"):
        registry.allow(USER, name, actor=OWNER)
    commands = [r.command for r in registry.history()]
    assert commands == ["a5", "a4", "a3"]
    assert registry.stats()["audit_records"] == 3
    # Eviction only trims the log, never the grants.
    assert len(registry.granted_commands(USER)) == 5


def test_bulk_operations_report_per_item():
    registry = PermissionRegistry()
    results = registry.allow_many(USER, ["ping", "ping", "bad name!", "sticker"], actor=OWNER)
    assert [(r.command, r.success) for r in results] == [
        ("ping", True),
        ("ping", False),
        ("bad name!", False),
        ("sticker", True),
    ]
    assert registry.granted_commands(USER) == ["ping", "sticker"]

    results = registry.disallow_many(USER, ["ping", "menu"], actor=OWNER)
    assert [r.success for r in results] == [True, False]

    registry.allow(USER, "menu", actor=OWNER)
    results = registry.disallow_all(USER, actor=OWNER)
    assert all(r.success for r in results)
    assert registry.granted_commands(USER) == []
    with pytest.raises(PermissionNotFoundError):
        registry.disallow_all(USER, actor=OWNER)


def test_queries_and_stats(clock):
    registry = PermissionRegistry(clock=clock)
    registry.allow(USER, "ping", actor=OWNER)
    clock.advance(hours=30)
    registry.allow("other@s.whatsapp.net", "ping", actor=OWNER)
    registry.allow("other@s.whatsapp.net", "menu", actor=OWNER)

    assert registry.users_with("ping") == ["other@s.whatsapp.net", USER]
    assert len(registry.recent_activity(hours=24)) == 2
    assert [r.command for r in registry.history("other@s.whatsapp.net", limit=1)] == ["menu"]
    stats = registry.stats()
    assert stats["total_users"] == 2
    assert stats["total_grants"] == 3
    assert stats["command_distribution"] == {"ping": 2, "menu": 1}


def test_snapshot_restore(clock):
    registry = PermissionRegistry(clock=clock)
    registry.allow(USER, "ping", actor=OWNER)
    registry.allow(USER, "menu", actor=OWNER)
    registry.disallow(USER, "menu", actor=OWNER)

    restored = PermissionRegistry(clock=clock)
    restored.restore(registry.snapshot())
    assert restored.is_granted(USER, "ping")
    assert not restored.is_granted(USER, "menu")
    assert [r.id for r in restored.history()] == [r.id for r in registry.history()]
    assert restored.history()[0].timestamp == clock()
