from __future__ import annotations

import asyncio
import gc

from botgate.core.engine import GameEngine
from botgate.core.locks import ChatLocks
from botgate.core.sweeper import GameSweeper
from botgate.core.types import GAME_ACTIVE, GAME_ENDED

A = "a@s.whatsapp.net"
B = "b@s.whatsapp.net"


def test_sweep_ends_idle_games_and_purges_history(clock, statistics):
    async def run_test():
        engine = GameEngine(clock=clock, statistics=statistics)
        expired_seen = []
        sweeper = GameSweeper(
            engine,
            ChatLocks(),
            inactivity_timeout_seconds=1800,
            history_retention_seconds=60,
            clock=clock,
            on_expired=expired_seen.append,
        )
        idle = engine.create_game("tictactoe", "chat-1", A)
        engine.join_game(idle.id, B)
        busy = engine.create_game("wordchain", "chat-2", A)
        engine.join_game(busy.id, B)

        clock.advance(minutes=20)
        engine.process_move(busy.id, A, "apple")
        clock.advance(minutes=11)

        expired = await sweeper.sweep_once()
        assert [s.id for s in expired] == [idle.id]
        assert idle.status == GAME_ENDED
        assert idle.end_reason == "timeout"
        assert idle.winner is None
        assert busy.status == GAME_ACTIVE
        assert expired_seen == [idle]
        assert [s.reason for s in statistics.summaries] == ["timeout"]

        # A second pass over an already-ended game is a no-op.
        assert await sweeper.sweep_once() == []
        assert len(statistics.summaries) == 1

        clock.advance(minutes=2)
        await sweeper.sweep_once()
        assert engine.get_session(idle.id) is None
        assert engine.get_session(busy.id) is busy

    asyncio.run(run_test())


def test_sweep_waits_for_chat_lock_and_rechecks(clock):
    async def run_test():
        engine = GameEngine(clock=clock)
        locks = ChatLocks()
        sweeper = GameSweeper(engine, locks, inactivity_timeout_seconds=60, clock=clock)
        session = engine.create_game("hangman", "chat-1", A, settings={"word": "radio"})
        engine.start_game(session.id)
        clock.advance(minutes=5)

        async with locks.lock_for("chat-1"):
            sweep = asyncio.create_task(sweeper.sweep_once())
            await asyncio.sleep(0)
            # A move lands while the sweeper waits for the lock.
            engine.process_move(session.id, A, "r")

        assert await sweep == []
        assert session.status == GAME_ACTIVE

    asyncio.run(run_test())


def test_failing_callback_does_not_stop_sweep(clock):
    async def run_test():
        def boom(_session):
            raise RuntimeError("gateway down")

        engine = GameEngine(clock=clock)
        sweeper = GameSweeper(engine, ChatLocks(), inactivity_timeout_seconds=60, clock=clock, on_expired=boom)
        engine.create_game("quiz", "chat-1", A)
        engine.create_game("quiz", "chat-2", A)
        clock.advance(minutes=2)
        expired = await sweeper.sweep_once()
        assert len(expired) == 2

    asyncio.run(run_test())


def test_start_and_stop_background_loop(clock):
    async def run_test():
        engine = GameEngine(clock=clock)
        sweeper = GameSweeper(
            engine, ChatLocks(), inactivity_timeout_seconds=60, sweep_interval_seconds=0.01, clock=clock
        )
        session = engine.create_game("quiz", "chat-1", A)
        clock.advance(minutes=2)
        sweeper.start()
        assert sweeper.running
        await asyncio.sleep(0.1)
        await sweeper.stop()
        assert not sweeper.running
        assert session.end_reason == "timeout"

    asyncio.run(run_test())


def test_purge_takes_each_chat_lock(clock):
    async def run_test():
        engine = GameEngine(clock=clock)
        locks = ChatLocks()
        sweeper = GameSweeper(engine, locks, history_retention_seconds=60, clock=clock)
        held = engine.create_game("hangman", "chat-1", A, settings={"word": "radio"})
        free = engine.create_game("hangman", "chat-2", A, settings={"word": "radio"})
        engine.stop_game("chat-1")
        engine.stop_game("chat-2")
        clock.advance(minutes=5)

        async with locks.lock_for("chat-1"):
            sweep = asyncio.create_task(sweeper.sweep_once())
            await asyncio.sleep(0)
            # chat-1 is locked, so its history is still there.
            assert engine.get_session(held.id) is held

        await sweep
        assert engine.get_session(held.id) is None
        assert engine.get_session(free.id) is None

    asyncio.run(run_test())


def test_purge_ended_can_be_limited_to_one_chat(clock):
    engine = GameEngine(clock=clock)
    first = engine.create_game("hangman", "chat-1", A, settings={"word": "radio"})
    second = engine.create_game("hangman", "chat-2", A, settings={"word": "radio"})
    engine.stop_game("chat-1")
    engine.stop_game("chat-2")
    clock.advance(minutes=5)

    assert engine.purge_ended(clock(), chat_id="chat-1") == 1
    assert engine.get_session(first.id) is None
    assert engine.get_session(second.id) is second


def test_chat_locks_are_dropped_once_unused():
    async def run_test():
        locks = ChatLocks()
        lock = locks.lock_for("chat-1")
        assert locks.lock_for("chat-1") is lock
        async with lock:
            assert locks.is_locked("chat-1")
        assert len(locks) == 1

        del lock
        gc.collect()
        assert len(locks) == 0
        assert not locks.is_locked("chat-1")

        async with locks.lock_for("chat-2"):
            assert len(locks) == 1
        gc.collect()
        assert len(locks) == 0

    asyncio.run(run_test())
