from .db import build_engine, build_session_factory, create_schema
from .stats import SQLAlchemyStatistics
from .store import SQLAlchemyPersistence
from .uow import SQLAlchemyUnitOfWork

__all__ = [
    "build_engine",
    "build_session_factory",
    "create_schema",
    "SQLAlchemyPersistence",
    "SQLAlchemyStatistics",
    "SQLAlchemyUnitOfWork",
]
