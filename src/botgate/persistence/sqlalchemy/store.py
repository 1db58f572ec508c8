from __future__ import annotations

import json
import logging
from typing import Any, Callable

from ..interfaces import UnitOfWork


class SQLAlchemyPersistence:
    """Namespaced key/value persistence; values are stored as JSON text."""

    def __init__(self, uow_factory: Callable[[], UnitOfWork]):
        self._uow_factory = uow_factory
        self._logger = logging.getLogger(__name__)

    def save(self, namespace: str, key: str, value: Any) -> None:
        payload = json.dumps(value, ensure_ascii=True, separators=(",", ":"), default=str)
        with self._uow_factory() as uow:
            uow.kv.upsert(namespace, key, payload)
            uow.commit()
        self._logger.debug("Saved %s/%s (%d bytes)", namespace, key, len(payload))

    def load(self, namespace: str, key: str) -> Any | None:
        with self._uow_factory() as uow:
            row = uow.kv.get(namespace, key)
            if row is None:
                return None
            payload = row.value_json
        try:
            return json.loads(payload)
        except ValueError:
            self._logger.warning("Stored value for %s/%s is not valid JSON", namespace, key)
            return None

    def delete(self, namespace: str, key: str) -> bool:
        with self._uow_factory() as uow:
            removed = uow.kv.delete(namespace, key)
            uow.commit()
        return removed > 0

    def keys(self, namespace: str) -> list[str]:
        with self._uow_factory() as uow:
            return uow.kv.keys(namespace)
