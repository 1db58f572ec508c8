from __future__ import annotations

import asyncio
import weakref


class ChatLocks:
    """One ``asyncio.Lock`` per chat; events for a chat run one at a time.

    Locks are held weakly: once no coroutine holds or waits on a chat's lock
    the entry is dropped, so chats seen once do not accumulate.
    """

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def __len__(self) -> int:
        return len(self._locks)

    def lock_for(self, chat_id: str) -> asyncio.Lock:
        lock = self._locks.get(chat_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[chat_id] = lock
        return lock

    def is_locked(self, chat_id: str) -> bool:
        lock = self._locks.get(chat_id)
        return lock is not None and lock.locked()
