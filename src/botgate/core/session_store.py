from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from .locks import ChatLocks
from .normalize import format_timestamp, normalize_command_name, parse_timestamp, utcnow
from .types import CommandSession

COMMAND_SLOT_PREFIX = "command:"


@dataclass
class _Slot:
    value: Any
    expires_at: Optional[datetime] = None
    task: Optional[asyncio.Task] = None


def command_slot_key(command: str) -> str:
    return f"{COMMAND_SLOT_PREFIX}{normalize_command_name(command)}"


class SessionStore:
    """Chat-scoped and global key/value slots held in memory.

    Temporary slots carry an expiry. A read at or after the expiry never sees
    the value, whether or not the scheduled deletion task has fired yet.
    Mutations set ``dirty``; the runtime mirrors ``snapshot()`` to durable
    storage and feeds it back through ``restore()`` on startup.
    """

    namespace = "sessions"
    snapshot_key = "state"

    def __init__(
        self,
        clock: Callable[[], datetime] | None = None,
        locks: ChatLocks | None = None,
        default_ttl_ms: int = 300_000,
    ):
        self._clock = clock or utcnow
        self._locks = locks
        self._default_ttl_ms = default_ttl_ms
        self._chats: dict[str, dict[str, _Slot]] = {}
        self._global: dict[str, _Slot] = {}
        self._logger = logging.getLogger(__name__)
        self.dirty = False

    # ------------------------------------------------------------------
    # Chat slots
    # ------------------------------------------------------------------

    def get(self, chat_id: str, key: str, default: Any = None) -> Any:
        slot = self._chats.get(chat_id, {}).get(key)
        if slot is None:
            return default
        if self._is_expired(slot):
            self._drop(chat_id, key)
            return default
        return slot.value

    def set(self, chat_id: str, key: str, value: Any) -> None:
        self._put(chat_id, key, _Slot(value=value))

    def delete(self, chat_id: str, key: str) -> bool:
        return self._drop(chat_id, key)

    def set_temporary(
        self,
        chat_id: str,
        key: str,
        value: Any,
        ttl_ms: int | None = None,
    ) -> datetime:
        ttl = self._default_ttl_ms if ttl_ms is None else max(0, int(ttl_ms))
        expires_at = self._clock() + timedelta(milliseconds=ttl)
        slot = _Slot(value=value, expires_at=expires_at)
        self._put(chat_id, key, slot)
        self._schedule_expiry(chat_id, key, slot, ttl / 1000.0)
        return expires_at

    def chat_state(self, chat_id: str) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for key in list(self._chats.get(chat_id, {})):
            sentinel = object()
            value = self.get(chat_id, key, sentinel)
            if value is not sentinel:
                out[key] = value
        return out

    # ------------------------------------------------------------------
    # Global slots
    # ------------------------------------------------------------------

    def get_global(self, key: str, default: Any = None) -> Any:
        slot = self._global.get(key)
        return default if slot is None else slot.value

    def set_global(self, key: str, value: Any) -> None:
        self._global[key] = _Slot(value=value)
        self.dirty = True

    def delete_global(self, key: str) -> bool:
        if self._global.pop(key, None) is None:
            return False
        self.dirty = True
        return True

    # ------------------------------------------------------------------
    # Command sessions (multi-step commands)
    # ------------------------------------------------------------------

    def start_command_session(
        self,
        chat_id: str,
        command: str,
        data: dict[str, Any] | None = None,
    ) -> CommandSession:
        now = self._clock()
        session = CommandSession(
            command=normalize_command_name(command),
            step=0,
            data=dict(data or {}),
            active=True,
            started_at=now,
            updated_at=now,
        )
        # Same slot key per command: starting again replaces the old session.
        self.set(chat_id, command_slot_key(command), session)
        return session

    def get_command_session(self, chat_id: str, command: str) -> CommandSession | None:
        value = self.get(chat_id, command_slot_key(command))
        return value if isinstance(value, CommandSession) else None

    def update_command_session(
        self,
        chat_id: str,
        command: str,
        data: dict[str, Any],
    ) -> CommandSession | None:
        session = self.get_command_session(chat_id, command)
        if session is None:
            return None
        session.data.update(data)
        session.updated_at = self._clock()
        self.dirty = True
        return session

    def next_step(
        self,
        chat_id: str,
        command: str,
        step_data: dict[str, Any] | None = None,
    ) -> CommandSession | None:
        session = self.get_command_session(chat_id, command)
        if session is None:
            return None
        session.step += 1
        session.data.update(step_data or {})
        session.updated_at = self._clock()
        self.dirty = True
        return session

    def end_command_session(self, chat_id: str, command: str) -> bool:
        return self.delete(chat_id, command_slot_key(command))

    def is_command_session_active(self, chat_id: str, command: str) -> bool:
        session = self.get_command_session(chat_id, command)
        return bool(session and session.active)

    def active_command_sessions(self) -> list[tuple[str, CommandSession]]:
        out: list[tuple[str, CommandSession]] = []
        for chat_id in list(self._chats):
            for key in list(self._chats.get(chat_id, {})):
                if not key.startswith(COMMAND_SLOT_PREFIX):
                    continue
                value = self.get(chat_id, key)
                if isinstance(value, CommandSession) and value.active:
                    out.append((chat_id, value))
        return out

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def purge_expired(self) -> int:
        removed = 0
        for chat_id in list(self._chats):
            for key, slot in list(self._chats.get(chat_id, {}).items()):
                if self._is_expired(slot):
                    self._drop(chat_id, key)
                    removed += 1
        if removed:
            self._logger.info("Purged %d expired temporary slots", removed)
        return removed

    def stats(self) -> dict[str, int]:
        command_sessions = 0
        temporary = 0
        for slots in self._chats.values():
            for key, slot in slots.items():
                if key.startswith(COMMAND_SLOT_PREFIX):
                    command_sessions += 1
                if slot.expires_at is not None and not self._is_expired(slot):
                    temporary += 1
        return {
            "chats": len(self._chats),
            "global_slots": len(self._global),
            "command_sessions": command_sessions,
            "temporary_slots": temporary,
        }

    def snapshot(self) -> dict[str, Any]:
        chats: dict[str, dict[str, Any]] = {}
        for chat_id, slots in self._chats.items():
            encoded = {
                key: self._encode_slot(key, slot)
                for key, slot in slots.items()
                if not self._is_expired(slot)
            }
            if encoded:
                chats[chat_id] = encoded
        return {
            "chats": chats,
            "global": {key: self._encode_slot(key, slot) for key, slot in self._global.items()},
        }

    def restore(self, snapshot: dict[str, Any] | None) -> None:
        for slots in self._chats.values():
            for slot in slots.values():
                self._cancel(slot)
        self._chats = {}
        self._global = {}
        snapshot = snapshot if isinstance(snapshot, dict) else {}

        now = self._clock()
        for chat_id, slots in (snapshot.get("chats") or {}).items():
            if not isinstance(slots, dict):
                continue
            for key, raw in slots.items():
                slot = self._decode_slot(key, raw)
                if slot is None or self._is_expired(slot):
                    continue
                self._chats.setdefault(chat_id, {})[key] = slot
                if slot.expires_at is not None:
                    delay = (slot.expires_at - now).total_seconds()
                    self._schedule_expiry(chat_id, key, slot, max(0.0, delay))
        for key, raw in (snapshot.get("global") or {}).items():
            slot = self._decode_slot(key, raw)
            if slot is not None:
                self._global[key] = slot
        self.dirty = False

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _is_expired(self, slot: _Slot) -> bool:
        return slot.expires_at is not None and self._clock() >= slot.expires_at

    def _put(self, chat_id: str, key: str, slot: _Slot) -> None:
        slots = self._chats.setdefault(chat_id, {})
        previous = slots.get(key)
        if previous is not None:
            self._cancel(previous)
        slots[key] = slot
        self.dirty = True

    def _drop(self, chat_id: str, key: str) -> bool:
        slots = self._chats.get(chat_id)
        if not slots:
            return False
        slot = slots.pop(key, None)
        if slot is None:
            return False
        self._cancel(slot)
        self.dirty = True
        return True

    @staticmethod
    def _cancel(slot: _Slot) -> None:
        task = slot.task
        slot.task = None
        if task is not None and not task.done():
            task.cancel()

    def _schedule_expiry(self, chat_id: str, key: str, slot: _Slot, delay_seconds: float) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: the check on read still hides the entry once expired.
            return
        slot.task = loop.create_task(self._expire_later(chat_id, key, slot, delay_seconds))

    async def _expire_later(self, chat_id: str, key: str, slot: _Slot, delay_seconds: float) -> None:
        try:
            await asyncio.sleep(delay_seconds)
        except asyncio.CancelledError:
            return
        slot.task = None
        if self._locks is None:
            self._expire_slot(chat_id, key, slot)
            return
        async with self._locks.lock_for(chat_id):
            self._expire_slot(chat_id, key, slot)

    def _expire_slot(self, chat_id: str, key: str, slot: _Slot) -> None:
        slots = self._chats.get(chat_id)
        if not slots or slots.get(key) is not slot:
            return
        del slots[key]
        self.dirty = True
        self._logger.debug("Temporary slot expired: chat=%s key=%s", chat_id, key)

    @staticmethod
    def _encode_slot(key: str, slot: _Slot) -> dict[str, Any]:
        value = slot.value
        if isinstance(value, CommandSession):
            value = {
                "command": value.command,
                "step": value.step,
                "data": value.data,
                "active": value.active,
                "started_at": format_timestamp(value.started_at),
                "updated_at": format_timestamp(value.updated_at),
            }
        return {"value": value, "expires_at": format_timestamp(slot.expires_at)}

    @staticmethod
    def _decode_slot(key: str, raw: Any) -> _Slot | None:
        if not isinstance(raw, dict) or "value" not in raw:
            return None
        value = raw.get("value")
        if key.startswith(COMMAND_SLOT_PREFIX) and isinstance(value, dict):
            value = CommandSession(
                command=str(value.get("command") or key[len(COMMAND_SLOT_PREFIX):]),
                step=int(value.get("step") or 0),
                data=dict(value.get("data") or {}),
                active=bool(value.get("active", True)),
                started_at=parse_timestamp(value.get("started_at")),
                updated_at=parse_timestamp(value.get("updated_at")),
            )
        return _Slot(value=value, expires_at=parse_timestamp(raw.get("expires_at")))
