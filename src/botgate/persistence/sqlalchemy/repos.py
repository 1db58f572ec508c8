from __future__ import annotations

from datetime import datetime

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from .models import GameResult, KeyValueEntry, PlayerStat


class KeyValueRepo:
    def __init__(self, session: Session):
        self.session = session

    def get(self, namespace: str, key: str) -> KeyValueEntry | None:
        stmt = (
            select(KeyValueEntry)
            .where(KeyValueEntry.namespace == namespace)
            .where(KeyValueEntry.key == key)
            .limit(1)
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def upsert(self, namespace: str, key: str, value_json: str) -> KeyValueEntry:
        row = self.get(namespace, key)
        if row is None:
            row = KeyValueEntry(namespace=namespace, key=key, value_json=value_json)
            self.session.add(row)
        else:
            row.value_json = value_json
        self.session.flush()
        return row

    def delete(self, namespace: str, key: str) -> int:
        stmt = (
            delete(KeyValueEntry)
            .where(KeyValueEntry.namespace == namespace)
            .where(KeyValueEntry.key == key)
        )
        result = self.session.execute(stmt)
        return int(result.rowcount or 0)

    def keys(self, namespace: str) -> list[str]:
        stmt = select(KeyValueEntry.key).where(KeyValueEntry.namespace == namespace).order_by(KeyValueEntry.key)
        return list(self.session.execute(stmt).scalars().all())


class PlayerStatRepo:
    def __init__(self, session: Session):
        self.session = session

    def get(self, user_id: str) -> PlayerStat | None:
        return self.session.get(PlayerStat, user_id)

    def get_or_create(self, user_id: str) -> PlayerStat:
        row = self.get(user_id)
        if row is None:
            row = PlayerStat(
                user_id=user_id,
                games_played=0,
                games_won=0,
                games_lost=0,
                games_draw=0,
                total_score=0,
                best_score=0,
                win_streak=0,
                best_win_streak=0,
                per_type_json="{}",
            )
            self.session.add(row)
            self.session.flush()
        return row

    def top(self, limit: int = 10) -> list[PlayerStat]:
        stmt = (
            select(PlayerStat)
            .order_by(PlayerStat.games_won.desc(), PlayerStat.total_score.desc(), PlayerStat.user_id.asc())
            .limit(limit)
        )
        return list(self.session.execute(stmt).scalars().all())


class GameResultRepo:
    def __init__(self, session: Session):
        self.session = session

    def exists(self, game_id: str) -> bool:
        stmt = select(GameResult.id).where(GameResult.game_id == game_id).limit(1)
        return self.session.execute(stmt).scalar_one_or_none() is not None

    def add(
        self,
        game_id: str,
        game_type: str,
        winner: str | None,
        reason: str,
        players_json: str,
        score_json: str,
        ended_at: datetime,
    ) -> GameResult:
        row = GameResult(
            game_id=game_id,
            game_type=game_type,
            winner=winner,
            reason=reason,
            players_json=players_json,
            score_json=score_json,
            ended_at=ended_at,
        )
        self.session.add(row)
        self.session.flush()
        return row

    def recent(self, limit: int = 20, game_type: str | None = None) -> list[GameResult]:
        stmt = select(GameResult)
        if game_type:
            stmt = stmt.where(GameResult.game_type == game_type)
        stmt = stmt.order_by(GameResult.ended_at.desc()).limit(limit)
        return list(self.session.execute(stmt).scalars().all())
