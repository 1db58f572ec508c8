from __future__ import annotations

import json
import re
from datetime import datetime, timezone
from typing import Any

_DEVICE_SUFFIX = re.compile(r":\d+(?=@|$)")
_COMMAND_NAME = re.compile(r"^[a-z][a-z0-9_-]*$")
MAX_COMMAND_NAME_CHARS = 50


def normalize_user_id(value: str | None) -> str:
    """Canonical form of a messaging identity.

    ``"12345:79@S.WhatsApp.net "`` and ``"12345@s.whatsapp.net"`` compare
    equal: whitespace and case are dropped and the ``:<digits>`` device suffix
    in front of the domain separator is stripped.
    """
    value = (value or "").strip().lower()
    if not value:
        return ""
    local, sep, domain = value.partition("@")
    local = _DEVICE_SUFFIX.sub("", local)
    return f"{local}{sep}{domain}"


def normalize_command_name(value: str | None) -> str:
    return (value or "").strip().lower()


def is_valid_command_name(name: str) -> bool:
    return bool(name) and len(name) <= MAX_COMMAND_NAME_CHARS and bool(_COMMAND_NAME.match(name))


def parse_command(text: str | None, prefix: str) -> tuple[str, list[str]] | None:
    """Split ``".allow 123 ping"`` into ``("allow", ["123", "ping"])``.

    Returns ``None`` for text without the prefix or with a malformed name.
    """
    text = (text or "").strip()
    if not prefix or not text.startswith(prefix):
        return None
    parts = text[len(prefix):].split()
    if not parts:
        return None
    name = normalize_command_name(parts[0])
    if not is_valid_command_name(name):
        return None
    return name, parts[1:]


def parse_json_dict(text: str | None) -> dict[str, Any]:
    if not text:
        return {}
    try:
        data = json.loads(text)
    except Exception:
        return {}
    return data if isinstance(data, dict) else {}


def dump_json(data: Any) -> str:
    return json.dumps(data, ensure_ascii=True, separators=(",", ":"))


def utcnow() -> datetime:
    # Naive UTC, matching what the DateTime columns store.
    return datetime.now(timezone.utc).replace(tzinfo=None)


def format_timestamp(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat()


def parse_timestamp(value: object) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return datetime.fromisoformat(value.strip())
    except ValueError:
        return None
