from __future__ import annotations

import asyncio
import random

from botgate.config import BotConfig
from botgate.core.types import InboundEvent
from botgate.runtime import BotRuntime

OWNER = "owner@s.whatsapp.net"
USER_B = "userb@s.whatsapp.net"
USER_C = "userc@s.whatsapp.net"


def _runtime(gateway, clock, **kwargs):
    config = BotConfig(owner_id=OWNER, database_url="sqlite+pysqlite:///:memory:")
    return BotRuntime(config=config, gateway=gateway, clock=clock, rng=random.Random(5), **kwargs)


def _event(sender, text, chat="chat-1"):
    return InboundEvent(sender_id=sender, chat_id=chat, raw_text=text)


def test_grant_then_registered_command(gateway, clock):
    async def run_test():
        runtime = _runtime(gateway, clock)
        runtime.register_command("ping", lambda ctx: "pong")

        denied = await runtime.handle_event(_event(USER_B, ".ping"))
        assert denied.status == "denied"

        granted = await runtime.handle_event(_event(OWNER, f".allow {USER_B} ping"))
        assert granted.status == "command_ok"
        assert granted.decision.reason == "owner"

        result = await runtime.handle_event(_event(USER_B, ".ping"))
        assert result.status == "command_ok"
        assert result.decision.reason == "explicit_grant"
        assert result.reply == "pong"

        await runtime.shutdown()
        assert ("chat-1", "pong") in gateway.sent

    asyncio.run(run_test())


def test_tictactoe_through_the_pipeline(gateway, clock):
    async def run_test():
        runtime = _runtime(gateway, clock)
        await runtime.handle_event(_event(OWNER, f".allow {USER_B} join"))

        created = await runtime.handle_event(_event(OWNER, ".game tictactoe"))
        assert created.status == "command_ok"
        assert ".join" in created.reply

        joined = await runtime.handle_event(_event(USER_B, ".join"))
        assert joined.status == "command_ok"
        session = runtime.games.get_active_game("chat-1")
        assert session.players == [OWNER, USER_B]

        accepted = await runtime.handle_event(_event(OWNER, "5"))
        assert accepted.status == "move_accepted"
        assert accepted.decision.reason == "owner"
        assert session.board_state["board"][4] == "X"

        rejected = await runtime.handle_event(_event(USER_B, "5"))
        assert rejected.status == "move_rejected"
        assert rejected.decision.reason == "active_game_input"
        assert rejected.error == "cell_occupied"
        assert session.current_player == USER_B

        chatter = await runtime.handle_event(_event(USER_B, "nice move"))
        assert chatter.status == "denied"

        outsider = await runtime.handle_event(_event(USER_C, "3"))
        assert outsider.status == "ignored"
        assert session.board_state["board"][2] is None

        wrong_turn = await runtime.handle_event(_event(OWNER, "1"))
        assert wrong_turn.status == "move_rejected"
        assert wrong_turn.error == "not_your_turn"

        stopped = await runtime.handle_event(_event(OWNER, ".stop"))
        assert stopped.status == "command_ok"
        assert runtime.games.get_active_game("chat-1") is None

        await runtime.shutdown()
        replies = [content for _, content in gateway.sent]
        assert any("Move rejected" in content for content in replies)
        assert "tictactoe stopped" in replies

    asyncio.run(run_test())


def test_single_player_game_starts_immediately_and_finishes(gateway, clock):
    async def run_test():
        config = BotConfig(
            owner_id=OWNER,
            database_url="sqlite+pysqlite:///:memory:",
            games={"settings": {"hangman": {"word": "abc"}}},
        )
        runtime = BotRuntime(config=config, gateway=gateway, clock=clock)
        created = await runtime.handle_event(_event(OWNER, ".game hangman"))
        assert created.status == "command_ok"
        assert "HANGMAN" in created.reply

        for letter in "ab":
            assert (await runtime.handle_event(_event(OWNER, letter))).status == "move_accepted"
        final = await runtime.handle_event(_event(OWNER, "c"))
        assert final.move.outcome.reason == "word_guessed"
        assert "guessed the word: abc" in final.reply
        await runtime.shutdown()

    asyncio.run(run_test())


def test_command_failures_are_typed_results(gateway, clock):
    async def run_test():
        runtime = _runtime(gateway, clock)

        def explode(ctx):
            raise RuntimeError("boom")

        runtime.register_command("explode", explode)

        missing = await runtime.handle_event(_event(OWNER, f".disallow {USER_B} ping"))
        assert missing.status == "command_failed"
        assert missing.error == "PermissionNotFoundError"

        usage = await runtime.handle_event(_event(OWNER, ".allow"))
        assert usage.status == "command_failed"

        unknown_game = await runtime.handle_event(_event(OWNER, ".game chess"))
        assert unknown_game.error == "UnknownGameTypeError"

        crashed = await runtime.handle_event(_event(OWNER, ".explode"))
        assert crashed.status == "command_failed"
        assert crashed.error == "boom"

        unhandled = await runtime.handle_event(_event(OWNER, ".nothing"))
        assert unhandled.status == "unhandled"
        plain = await runtime.handle_event(_event(OWNER, "just chatting"))
        assert plain.status == "unhandled"
        await runtime.shutdown()

    asyncio.run(run_test())


def test_async_handlers_and_gateway_failures(clock):
    class BrokenGateway:
        async def send(self, chat_id, content):
            raise ConnectionError("offline")

    async def run_test():
        runtime = _runtime(BrokenGateway(), clock)

        async def slow(ctx):
            await asyncio.sleep(0)
            return f"args={ctx.args}"

        runtime.register_command("slow", slow)
        result = await runtime.handle_event(_event(OWNER, ".slow a b"))
        assert result.status == "command_ok"
        assert result.reply == "args=['a', 'b']"
        assert await runtime.shutdown() is True

    asyncio.run(run_test())


def test_events_in_one_chat_are_serialized(gateway, clock):
    async def run_test():
        runtime = _runtime(gateway, clock)
        order = []

        async def slow(ctx):
            order.append(("start", ctx.args[0]))
            await asyncio.sleep(0.01)
            order.append(("end", ctx.args[0]))
            return None

        runtime.register_command("slow", slow)
        await asyncio.gather(
            runtime.handle_event(_event(OWNER, ".slow one")),
            runtime.handle_event(_event(OWNER, ".slow two")),
        )
        assert order == [("start", "one"), ("end", "one"), ("start", "two"), ("end", "two")]

        order.clear()
        await asyncio.gather(
            runtime.handle_event(_event(OWNER, ".slow x", chat="chat-x")),
            runtime.handle_event(_event(OWNER, ".slow y", chat="chat-y")),
        )
        assert order[:2] == [("start", "x"), ("start", "y")]
        await runtime.shutdown()

    asyncio.run(run_test())


def test_sweeper_timeout_is_announced(gateway, clock):
    async def run_test():
        runtime = _runtime(gateway, clock)
        await runtime.handle_event(_event(OWNER, ".game tictactoe"))
        clock.advance(hours=1)
        expired = await runtime.sweeper.sweep_once()
        assert len(expired) == 1
        await runtime.shutdown()
        assert gateway.sent[-1] == ("chat-1", "tictactoe: Game ended after inactivity.")

    asyncio.run(run_test())


def _quiz_runtime(gateway, clock):
    questions = [
        {"question": "2+2?", "options": ["3", "4"], "answer": 1},
        {"question": "Capital of France?", "options": ["Paris", "Rome"], "answer": 0},
    ]
    config = BotConfig(
        owner_id=OWNER,
        database_url="sqlite+pysqlite:///:memory:",
        games={"settings": {"quiz": {"questions": questions}}},
    )
    return BotRuntime(config=config, gateway=gateway, clock=clock)


def test_quiz_waits_for_joins_and_scores_every_participant(gateway, clock):
    async def run_test():
        runtime = _quiz_runtime(gateway, clock)
        await runtime.handle_event(_event(OWNER, f".allow {USER_B} join"))

        created = await runtime.handle_event(_event(OWNER, ".game quiz"))
        assert created.status == "command_ok"
        assert ".join" in created.reply
        session = runtime.games.get_active_game("chat-1")
        assert session.status == "waiting"

        joined = await runtime.handle_event(_event(USER_B, ".join"))
        assert joined.status == "command_ok"
        assert session.players == [OWNER, USER_B]

        started = await runtime.handle_event(_event(OWNER, ".start"))
        assert started.status == "command_ok"
        assert "QUIZ 1/2" in started.reply

        answer = await runtime.handle_event(_event(USER_B, "b"))
        assert answer.status == "move_accepted"
        assert answer.decision.reason == "active_game_input"
        assert session.score == {OWNER: 0, USER_B: 1}

        final = await runtime.handle_event(_event(OWNER, "1"))
        assert final.move.outcome.reason == "questions_exhausted"
        assert session.score == {OWNER: 1, USER_B: 1}
        await runtime.shutdown()

    asyncio.run(run_test())


def test_chatter_in_quiz_chat_is_not_an_answer(gateway, clock):
    async def run_test():
        runtime = _quiz_runtime(gateway, clock)
        await runtime.handle_event(_event(OWNER, f".allow {USER_B} join"))
        await runtime.handle_event(_event(OWNER, ".game quiz"))
        await runtime.handle_event(_event(USER_B, ".join"))
        await runtime.handle_event(_event(OWNER, ".start"))
        session = runtime.games.get_active_game("chat-1")

        owner_chatter = await runtime.handle_event(_event(OWNER, "brb getting coffee"))
        assert owner_chatter.status == "unhandled"
        player_chatter = await runtime.handle_event(_event(USER_B, "sounds good"))
        assert player_chatter.status == "denied"
        outsider = await runtime.handle_event(_event(USER_C, "a"))
        assert outsider.status == "ignored"

        assert session.board_state["current_question"] == 0
        assert session.score == {OWNER: 0, USER_B: 0}
        await runtime.shutdown()

    asyncio.run(run_test())
