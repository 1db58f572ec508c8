from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from botgate.persistence.sqlalchemy.db import build_engine, build_session_factory, create_schema
from botgate.persistence.sqlalchemy.uow import SQLAlchemyUnitOfWork


class FakeClock:
    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2024, 1, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingGateway:
    def __init__(self):
        self.sent: list[tuple[str, str]] = []

    async def send(self, chat_id: str, content: str) -> None:
        self.sent.append((chat_id, content))


class RecordingStatistics:
    def __init__(self):
        self.summaries = []

    def record_game(self, summary) -> None:
        self.summaries.append(summary)


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def gateway():
    return RecordingGateway()


@pytest.fixture()
def statistics():
    return RecordingStatistics()


@pytest.fixture()
def session_factory():
    engine = build_engine("sqlite+pysqlite:///:memory:")
    create_schema(engine)
    return build_session_factory(engine)


@pytest.fixture()
def uow_factory(session_factory):
    def _factory():
        return SQLAlchemyUnitOfWork(session_factory)

    return _factory
