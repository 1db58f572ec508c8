from __future__ import annotations

import asyncio

from botgate.core.locks import ChatLocks
from botgate.core.session_store import SessionStore, command_slot_key


def test_chat_and_global_slots(clock):
    store = SessionStore(clock=clock)
    store.set("chat-1", "mode", "quiet")
    store.set_global("motd", "hello")
    assert store.get("chat-1", "mode") == "quiet"
    assert store.get("chat-2", "mode", "default") == "default"
    assert store.chat_state("chat-1") == {"mode": "quiet"}
    assert store.get_global("motd") == "hello"

    assert store.delete("chat-1", "mode") is True
    assert store.delete("chat-1", "mode") is False
    assert store.delete_global("motd") is True
    assert store.get_global("motd") is None


def test_temporary_slot_hidden_at_expiry_without_loop(clock):
    store = SessionStore(clock=clock)
    expires_at = store.set_temporary("chat-1", "otp", "1234", ttl_ms=5_000)

    clock.advance(seconds=4)
    assert store.get("chat-1", "otp") == "1234"
    assert store.stats()["temporary_slots"] == 1

    clock.now = expires_at
    assert store.get("chat-1", "otp") is None
    assert store.chat_state("chat-1") == {}


def test_default_ttl_and_purge(clock):
    store = SessionStore(clock=clock, default_ttl_ms=1_000)
    store.set_temporary("chat-1", "a", 1)
    store.set_temporary("chat-2", "b", 2, ttl_ms=60_000)
    store.set("chat-2", "c", 3)

    clock.advance(seconds=2)
    assert store.purge_expired() == 1
    assert store.get("chat-2", "b") == 2
    assert store.get("chat-2", "c") == 3


def test_eager_expiry_task_removes_slot():
    async def run_test():
        store = SessionStore(locks=ChatLocks())
        store.set_temporary("chat-1", "flag", True, ttl_ms=10)
        await asyncio.sleep(0.1)
        assert "flag" not in store._chats.get("chat-1", {})

    asyncio.run(run_test())


def test_overwrite_cancels_pending_expiry():
    async def run_test():
        store = SessionStore(locks=ChatLocks())
        store.set_temporary("chat-1", "flag", "temp", ttl_ms=10)
        store.set("chat-1", "flag", "kept")
        await asyncio.sleep(0.1)
        assert store.get("chat-1", "flag") == "kept"

    asyncio.run(run_test())


def test_expiry_waits_for_chat_lock():
    async def run_test():
        locks = ChatLocks()
        store = SessionStore(locks=locks)
        async with locks.lock_for("chat-1"):
            store.set_temporary("chat-1", "flag", True, ttl_ms=10)
            await asyncio.sleep(0.05)
            # The deletion task is parked on the lock we hold.
            assert "flag" in store._chats["chat-1"]
        await asyncio.sleep(0.05)
        assert "flag" not in store._chats.get("chat-1", {})

    asyncio.run(run_test())


def test_command_session_steps(clock):
    store = SessionStore(clock=clock)
    session = store.start_command_session("chat-1", "Register", {"name": "ann"})
    assert session.command == "register"
    assert session.step == 0
    assert store.is_command_session_active("chat-1", "register")
    assert store.get("chat-1", command_slot_key("register")) is session

    clock.advance(seconds=3)
    store.next_step("chat-1", "register", {"age": 30})
    store.update_command_session("chat-1", "register", {"city": "x"})
    current = store.get_command_session("chat-1", "register")
    assert current.step == 1
    assert current.data == {"name": "ann", "age": 30, "city": "x"}
    assert current.updated_at == clock()
    assert store.active_command_sessions() == [("chat-1", current)]

    # Starting again replaces the session instead of stacking a second one.
    store.start_command_session("chat-1", "register")
    assert store.get_command_session("chat-1", "register").step == 0
    assert len(store.active_command_sessions()) == 1

    assert store.end_command_session("chat-1", "register") is True
    assert store.get_command_session("chat-1", "register") is None
    assert store.next_step("chat-1", "register") is None


def test_snapshot_restore_skips_expired(clock):
    store = SessionStore(clock=clock)
    store.set("chat-1", "mode", "quiet")
    store.set_temporary("chat-1", "short", 1, ttl_ms=1_000)
    store.set_temporary("chat-1", "long", 2, ttl_ms=600_000)
    store.start_command_session("chat-1", "menu", {"page": 2})
    store.next_step("chat-1", "menu")
    store.set_global("counter", 7)
    snapshot = store.snapshot()

    clock.advance(seconds=5)
    restored = SessionStore(clock=clock)
    restored.restore(snapshot)
    assert restored.dirty is False
    assert restored.get("chat-1", "mode") == "quiet"
    assert restored.get("chat-1", "short") is None
    assert restored.get("chat-1", "long") == 2
    assert restored.get_global("counter") == 7
    menu = restored.get_command_session("chat-1", "menu")
    assert menu.step == 1
    assert menu.data == {"page": 2}

    clock.advance(minutes=10)
    assert restored.get("chat-1", "long") is None
    assert "long" not in restored.snapshot()["chats"].get("chat-1", {})
