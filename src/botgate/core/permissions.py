from __future__ import annotations

import logging
import uuid
from collections import Counter, deque
from datetime import datetime, timedelta
from typing import Any, Callable, Iterable

from .errors import (
    InvalidCommandNameError,
    PermissionAlreadyGrantedError,
    PermissionNotFoundError,
    PermissionRegistryError,
)
from .normalize import (
    format_timestamp,
    is_valid_command_name,
    normalize_command_name,
    normalize_user_id,
    parse_timestamp,
    utcnow,
)
from .types import AuditRecord, BulkResult

ACTION_ALLOW = "allow"
ACTION_DISALLOW = "disallow"


class PermissionRegistry:
    """Explicit per-user command grants issued by the owner.

    Grant sets only change through ``allow``/``disallow``; each successful call
    appends exactly one ``AuditRecord`` to a ring buffer that silently drops
    its oldest entries past ``max_audit_records``.
    """

    namespace = "permissions"
    snapshot_key = "state"

    def __init__(
        self,
        max_audit_records: int = 1000,
        clock: Callable[[], datetime] | None = None,
    ):
        self._clock = clock or utcnow
        self._grants: dict[str, set[str]] = {}
        self._audit: deque[AuditRecord] = deque(maxlen=max(1, int(max_audit_records)))
        self._logger = logging.getLogger(__name__)
        self.dirty = False

    def allow(self, user_id: str, command: str, actor: str | None = None) -> AuditRecord:
        user, name = self._validate(user_id, command)
        granted = self._grants.setdefault(user, set())
        if name in granted:
            raise PermissionAlreadyGrantedError(
                f"{name} already allowed for {user}", user_id=user, command=name
            )
        granted.add(name)
        self._logger.info("Allowed command %r for %s (by %s)", name, user, actor)
        return self._record(ACTION_ALLOW, user, name, actor)

    def disallow(self, user_id: str, command: str, actor: str | None = None) -> AuditRecord:
        user, name = self._validate(user_id, command)
        granted = self._grants.get(user)
        if not granted or name not in granted:
            raise PermissionNotFoundError(
                f"{name} is not allowed for {user}", user_id=user, command=name
            )
        granted.discard(name)
        if not granted:
            del self._grants[user]
        self._logger.info("Disallowed command %r for %s (by %s)", name, user, actor)
        return self._record(ACTION_DISALLOW, user, name, actor)

    def is_granted(self, user_id: str, command: str) -> bool:
        granted = self._grants.get(normalize_user_id(user_id))
        return bool(granted) and normalize_command_name(command) in granted

    def granted_commands(self, user_id: str) -> list[str]:
        return sorted(self._grants.get(normalize_user_id(user_id), ()))

    def users_with(self, command: str) -> list[str]:
        name = normalize_command_name(command)
        return sorted(user for user, granted in self._grants.items() if name in granted)

    def all_grants(self) -> dict[str, list[str]]:
        return {user: sorted(granted) for user, granted in self._grants.items()}

    # Bulk variants apply the single-item rules one by one; partial success is fine.

    def allow_many(
        self,
        user_id: str,
        commands: Iterable[str],
        actor: str | None = None,
    ) -> list[BulkResult]:
        return [self._bulk_item(self.allow, user_id, command, actor) for command in commands]

    def disallow_many(
        self,
        user_id: str,
        commands: Iterable[str],
        actor: str | None = None,
    ) -> list[BulkResult]:
        return [self._bulk_item(self.disallow, user_id, command, actor) for command in commands]

    def disallow_all(self, user_id: str, actor: str | None = None) -> list[BulkResult]:
        user = normalize_user_id(user_id)
        if not self._grants.get(user):
            raise PermissionNotFoundError(f"no commands allowed for {user}", user_id=user)
        return self.disallow_many(user, sorted(self._grants[user]), actor)

    def history(self, user_id: str | None = None, limit: int = 50) -> list[AuditRecord]:
        records = list(self._audit)
        if user_id:
            user = normalize_user_id(user_id)
            records = [record for record in records if record.user_id == user]
        if limit <= 0:
            return []
        return list(reversed(records[-limit:]))

    def recent_activity(self, hours: float = 24) -> list[AuditRecord]:
        cutoff = self._clock() - timedelta(hours=hours)
        return [record for record in self._audit if record.timestamp > cutoff]

    def stats(self) -> dict[str, Any]:
        distribution: Counter[str] = Counter()
        for granted in self._grants.values():
            distribution.update(granted)
        return {
            "total_users": len(self._grants),
            "total_grants": sum(distribution.values()),
            "command_distribution": dict(distribution),
            "audit_records": len(self._audit),
        }

    def snapshot(self) -> dict[str, Any]:
        return {
            "grants": self.all_grants(),
            "audit": [
                {
                    "id": record.id,
                    "action": record.action,
                    "user_id": record.user_id,
                    "command": record.command,
                    "actor": record.actor,
                    "timestamp": format_timestamp(record.timestamp),
                }
                for record in self._audit
            ],
        }

    def restore(self, snapshot: dict[str, Any] | None) -> None:
        snapshot = snapshot if isinstance(snapshot, dict) else {}
        self._grants = {}
        for user, commands in (snapshot.get("grants") or {}).items():
            names = {normalize_command_name(c) for c in commands or () if c}
            if names:
                self._grants[normalize_user_id(user)] = names
        self._audit.clear()
        for raw in snapshot.get("audit") or ():
            if not isinstance(raw, dict):
                continue
            timestamp = parse_timestamp(raw.get("timestamp"))
            if timestamp is None:
                continue
            self._audit.append(
                AuditRecord(
                    id=str(raw.get("id") or uuid.uuid4().hex),
                    action=str(raw.get("action") or ""),
                    user_id=str(raw.get("user_id") or ""),
                    command=str(raw.get("command") or ""),
                    actor=raw.get("actor"),
                    timestamp=timestamp,
                )
            )
        self.dirty = False

    def _validate(self, user_id: str, command: str) -> tuple[str, str]:
        user = normalize_user_id(user_id)
        name = normalize_command_name(command)
        if not user:
            raise PermissionRegistryError("user id is empty", command=name)
        if not is_valid_command_name(name):
            raise InvalidCommandNameError(f"invalid command name: {command!r}", user_id=user, command=name)
        return user, name

    def _record(self, action: str, user: str, command: str, actor: str | None) -> AuditRecord:
        record = AuditRecord(
            id=uuid.uuid4().hex,
            action=action,
            user_id=user,
            command=command,
            actor=normalize_user_id(actor) or None,
            timestamp=self._clock(),
        )
        self._audit.append(record)
        self.dirty = True
        return record

    @staticmethod
    def _bulk_item(op, user_id: str, command: str, actor: str | None) -> BulkResult:
        try:
            op(user_id, command, actor)
        except PermissionRegistryError as exc:
            return BulkResult(command=normalize_command_name(command), success=False, reason=str(exc))
        return BulkResult(command=normalize_command_name(command), success=True, reason="ok")
