from __future__ import annotations

import asyncio
from typing import Generic, TypeVar

T = TypeVar("T")


class FactQueue(Generic[T]):
    """Bounded asyncio queue feeding one store consumer.

    ``enqueue`` waits while the queue is full, which slows collectors down
    instead of dropping facts.
    """

    def __init__(self, name: str, maxsize: int) -> None:
        self.name = name
        self._queue: asyncio.Queue[T] = asyncio.Queue(maxsize=maxsize)

    async def enqueue(self, item: T) -> None:
        await self._queue.put(item)

    async def dequeue(self) -> T:
        return await self._queue.get()

    def task_done(self) -> None:
        self._queue.task_done()

    async def join(self) -> None:
        await self._queue.join()

    def size(self) -> int:
        return self._queue.qsize()
