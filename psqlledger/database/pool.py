"""
Fixed-size pool of ClientHandles.

The pool is an asyncio.Queue holding the idle handles. Borrowing takes one off
the queue and waits (FIFO) while none is idle; returning puts it back. A
handle is therefore never used by two borrowers at once, and at most `size`
operations are in flight against the backend.

There is no borrow timeout. Callers that need a bounded wait wrap the call:

    async with asyncio.timeout(2):
        async with pool.borrow() as handle:
            ...

Broken handles go back into the pool as they are; nothing is re-dialled.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, List, Sequence

from psqlledger.database.store import ClientHandle
from psqlledger.errors import PoolClosedError
from psqlledger.utils.logging import get_logger

log = get_logger(__name__)

ClientFactory = Callable[[int], Awaitable[ClientHandle]]


async def _close_quietly(handles: Sequence[ClientHandle]) -> None:
    for handle in handles:
        try:
            await handle.close()
        except Exception:  # noqa: BLE001 - best-effort cleanup, the caller re-raises
            log.warning("Failed to close client handle", exc_info=True)


class ClientPool:
    """
    Bounded set of client handles with borrow/return semantics.

    Prefer `await ClientPool.create(size, factory)`, which opens every handle
    up front and fails as a whole if any of them cannot be opened.
    """

    def __init__(self, handles: Sequence[ClientHandle]) -> None:
        if not handles:
            raise ValueError("a client pool needs at least one handle")
        self._handles: List[ClientHandle] = list(handles)
        self._idle: asyncio.Queue[ClientHandle] = asyncio.Queue(maxsize=len(self._handles))
        for handle in self._handles:
            self._idle.put_nowait(handle)
        self._closed = False
        # Handles taken off the queue by close().
        self._taken = 0

    @classmethod
    async def create(cls, size: int, factory: ClientFactory) -> "ClientPool":
        """
        Open `size` handles with `factory` and wrap them in a pool.

        Parameters
        ----------
        size : int
            Number of handles; must be at least 1.
        factory : Callable[[int], Awaitable[ClientHandle]]
            Called once per slot with the slot index.

        Raises
        ------
        ValueError
            If `size` is less than 1.
        Exception
            Whatever `factory` raised. Handles opened before the failure are
            closed first.
        """
        if size < 1:
            raise ValueError(f"pool size must be at least 1, got {size}")

        handles: List[ClientHandle] = []
        try:
            for index in range(size):
                handles.append(await factory(index))
                log.debug("New client", extra={"index": index})
        except BaseException:
            await _close_quietly(handles)
            raise

        log.info("Client pool ready", extra={"pool_size": size})
        return cls(handles)

    @property
    def size(self) -> int:
        return len(self._handles)

    @property
    def available(self) -> int:
        """Number of idle handles right now."""
        return self._idle.qsize()

    @property
    def closed(self) -> bool:
        return self._closed

    @asynccontextmanager
    async def borrow(self) -> AsyncIterator[ClientHandle]:
        """
        Check out a handle for one logical operation.

        The handle goes back to the pool when the block exits, whether or not
        it raised; the block's exception propagates unchanged.
        """
        if self._closed:
            raise PoolClosedError("client pool is closed")
        handle = await self._idle.get()
        try:
            yield handle
        finally:
            self._idle.put_nowait(handle)

    async def ping(self) -> None:
        async with self.borrow() as handle:
            await handle.ping()

    async def initialize_schema(self, migrations_path: str) -> List[int]:
        async with self.borrow() as handle:
            return await handle.initialize_schema(migrations_path)

    async def check_database_exists(self, db_name: str) -> bool:
        async with self.borrow() as handle:
            return await handle.check_database_exists(db_name)

    async def close(self) -> None:
        """
        Wait for every handle to be returned, then close them all.

        Idempotent. Borrows attempted afterwards raise PoolClosedError. If the
        wait is cancelled, handles already drained are still closed and a
        later call drains the rest.
        """
        self._closed = True
        drained: List[ClientHandle] = []
        try:
            while self._taken < len(self._handles):
                drained.append(await self._idle.get())
                self._taken += 1
        finally:
            await _close_quietly(drained)
        if drained:
            log.info("Client pool closed", extra={"pool_size": len(self._handles)})


__all__ = ["ClientFactory", "ClientPool"]
