from __future__ import annotations

import asyncio

from botgate.config import BotConfig, configure_logging
from botgate.core.types import InboundEvent
from botgate.runtime import BotRuntime

OWNER = "15550001111@s.whatsapp.net"
FRIEND = "15550002222@s.whatsapp.net"
CHAT = "120363000000000000@g.us"


class ConsoleGateway:
    async def send(self, chat_id: str, content: str) -> None:
        print(f"[{chat_id}] {content}")


async def main() -> None:
    configure_logging("INFO")
    config = BotConfig(owner_id=OWNER, database_url="sqlite+pysqlite:///:memory:")
    runtime = BotRuntime.from_config(config, gateway=ConsoleGateway())
    await runtime.start()

    script = [
        (OWNER, f".allow {FRIEND} join"),
        (OWNER, ".game tictactoe"),
        (FRIEND, ".join"),
        (OWNER, "5"),
        (FRIEND, "5"),
        (FRIEND, "1"),
        (FRIEND, "hello there"),
        (OWNER, ".stop"),
    ]
    for sender, text in script:
        result = await runtime.handle_event(InboundEvent(sender_id=sender, chat_id=CHAT, raw_text=text))
        print(f"{sender.split('@')[0]} {text!r} -> {result.status}")

    await runtime.shutdown()


if __name__ == "__main__":
    asyncio.run(main())
