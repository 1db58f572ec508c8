from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin


class KeyValueEntry(TimestampMixin, Base):
    __tablename__ = "bg_kv_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    namespace: Mapped[str] = mapped_column(String(64), nullable=False)
    key: Mapped[str] = mapped_column(String(256), nullable=False)
    value_json: Mapped[str] = mapped_column(Text, nullable=False, default="null")

    __table_args__ = (
        UniqueConstraint("namespace", "key", name="uq_bg_kv_namespace_key"),
    )


class PlayerStat(TimestampMixin, Base):
    __tablename__ = "bg_player_stats"

    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    games_played: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    games_won: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    games_lost: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    games_draw: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    best_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    win_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    best_win_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    per_type_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    last_played_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)


class GameResult(Base):
    __tablename__ = "bg_game_results"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    game_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    game_type: Mapped[str] = mapped_column(String(32), nullable=False)
    winner: Mapped[str | None] = mapped_column(String(128), nullable=True)
    reason: Mapped[str] = mapped_column(String(32), nullable=False)
    players_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    score_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    ended_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (
        Index("ix_bg_game_results_type_ended", "game_type", "ended_at"),
    )
