from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, List

import pytest

from psqlledger.database.memory import MemoryClient
from psqlledger.database.pool import ClientPool
from psqlledger.database.store import ClientHandle, RecordStore
from psqlledger.errors import ConnectivityError, PoolClosedError

POOL_SIZE = 3


class _RecordingHandle(ClientHandle):
    """Handle recording its lifecycle calls."""

    def __init__(self, index: int) -> None:
        self.index = index
        self.close_calls = 0
        self.ping_calls = 0
        self._inner = MemoryClient()

    def query(self) -> RecordStore:
        return self._inner.query()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[RecordStore]:
        yield self._inner.query()

    async def ping(self) -> None:
        self.ping_calls += 1

    async def close(self) -> None:
        self.close_calls += 1

    async def initialize_schema(self, migrations_path: str) -> List[int]:
        return [1]

    async def check_database_exists(self, db_name: str) -> bool:
        return db_name == "bank"


def _factory(created: List[_RecordingHandle]):
    async def factory(index: int) -> ClientHandle:
        handle = _RecordingHandle(index)
        created.append(handle)
        return handle

    return factory


@pytest.mark.asyncio
@pytest.mark.parametrize("size", [0, -1])
async def test_create_rejects_non_positive_size(size: int) -> None:
    created: List[_RecordingHandle] = []

    with pytest.raises(ValueError, match="at least 1"):
        await ClientPool.create(size, _factory(created))

    assert created == []


@pytest.mark.asyncio
async def test_create_opens_every_handle_up_front() -> None:
    created: List[_RecordingHandle] = []

    pool = await ClientPool.create(POOL_SIZE, _factory(created))

    assert [h.index for h in created] == list(range(POOL_SIZE))
    assert pool.size == POOL_SIZE
    assert pool.available == POOL_SIZE
    await pool.close()


@pytest.mark.asyncio
async def test_create_fails_atomically_and_closes_opened_handles() -> None:
    created: List[_RecordingHandle] = []
    make = _factory(created)

    async def flaky(index: int) -> ClientHandle:
        if index == 2:
            raise ConnectivityError("connection refused")
        return await make(index)

    with pytest.raises(ConnectivityError, match="connection refused"):
        await ClientPool.create(POOL_SIZE, flaky)

    assert len(created) == 2
    assert all(h.close_calls == 1 for h in created)


@pytest.mark.asyncio
async def test_second_borrow_waits_until_first_handle_is_returned() -> None:
    pool = await ClientPool.create(1, _factory([]))
    events: List[str] = []
    first_borrowed = asyncio.Event()
    release = asyncio.Event()

    async def first() -> None:
        async with pool.borrow():
            events.append("first-acquired")
            first_borrowed.set()
            await release.wait()
            events.append("first-releasing")

    async def second() -> None:
        await first_borrowed.wait()
        async with pool.borrow():
            events.append("second-acquired")

    t1 = asyncio.create_task(first())
    t2 = asyncio.create_task(second())
    await first_borrowed.wait()
    await asyncio.sleep(0.01)

    assert not t2.done()
    assert events == ["first-acquired"]
    assert pool.available == 0

    release.set()
    await asyncio.gather(t1, t2)

    assert events == ["first-acquired", "first-releasing", "second-acquired"]
    assert pool.available == 1
    await pool.close()


@pytest.mark.asyncio
async def test_borrow_returns_handle_and_reraises_original_error() -> None:
    pool = await ClientPool.create(1, _factory([]))
    boom = RuntimeError("operation failed")

    with pytest.raises(RuntimeError) as excinfo:
        async with pool.borrow():
            raise boom

    assert excinfo.value is boom
    assert pool.available == 1
    await pool.close()


@pytest.mark.asyncio
async def test_concurrent_borrowers_never_share_a_handle() -> None:
    pool = await ClientPool.create(POOL_SIZE, _factory([]))
    in_use: set[int] = set()
    peak = 0

    async def worker() -> None:
        nonlocal peak
        async with pool.borrow() as handle:
            assert id(handle) not in in_use
            in_use.add(id(handle))
            peak = max(peak, len(in_use))
            await asyncio.sleep(0)
            in_use.remove(id(handle))

    await asyncio.gather(*(worker() for _ in range(20)))

    assert peak <= POOL_SIZE
    assert pool.available == POOL_SIZE
    await pool.close()


@pytest.mark.asyncio
async def test_waiters_are_served_in_arrival_order() -> None:
    pool = await ClientPool.create(1, _factory([]))
    order: List[int] = []

    async with pool.borrow():
        tasks = []
        for n in range(3):
            tasks.append(asyncio.create_task(_record_borrow(pool, order, n)))
            await asyncio.sleep(0)

    await asyncio.gather(*tasks)
    assert order == [0, 1, 2]
    await pool.close()


async def _record_borrow(pool: ClientPool, order: List[int], n: int) -> None:
    async with pool.borrow():
        order.append(n)


@pytest.mark.asyncio
async def test_borrow_can_be_bounded_by_caller_timeout() -> None:
    pool = await ClientPool.create(1, _factory([]))

    async with pool.borrow():
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(_record_borrow(pool, [], 0), timeout=0.01)

    assert pool.available == 1
    await pool.close()


@pytest.mark.asyncio
async def test_pool_wide_helpers_borrow_one_handle() -> None:
    created: List[_RecordingHandle] = []
    pool = await ClientPool.create(2, _factory(created))

    await pool.ping()
    assert await pool.check_database_exists("bank") is True
    assert await pool.check_database_exists("missing") is False
    assert await pool.initialize_schema("db/migrations") == [1]

    assert sum(h.ping_calls for h in created) == 1
    assert pool.available == 2
    await pool.close()


@pytest.mark.asyncio
async def test_close_is_idempotent_and_blocks_further_borrows() -> None:
    created: List[_RecordingHandle] = []
    pool = await ClientPool.create(2, _factory(created))

    await pool.close()
    await pool.close()

    assert pool.closed
    assert all(h.close_calls == 1 for h in created)
    with pytest.raises(PoolClosedError):
        async with pool.borrow():
            pass


@pytest.mark.asyncio
async def test_close_waits_for_borrowed_handles() -> None:
    created: List[_RecordingHandle] = []
    pool = await ClientPool.create(1, _factory(created))
    release = asyncio.Event()
    borrowed = asyncio.Event()

    async def hold() -> None:
        async with pool.borrow():
            borrowed.set()
            await release.wait()

    holder = asyncio.create_task(hold())
    await borrowed.wait()
    closer = asyncio.create_task(pool.close())
    await asyncio.sleep(0.01)

    assert not closer.done()
    assert created[0].close_calls == 0

    release.set()
    await asyncio.gather(holder, closer)
    assert created[0].close_calls == 1


@pytest.mark.asyncio
async def test_cancelled_close_releases_drained_handles_and_can_be_retried() -> None:
    created: List[_RecordingHandle] = []
    pool = await ClientPool.create(2, _factory(created))
    release = asyncio.Event()
    borrowed = asyncio.Event()

    async def hold() -> None:
        async with pool.borrow():
            borrowed.set()
            await release.wait()

    holder = asyncio.create_task(hold())
    await borrowed.wait()
    closer = asyncio.create_task(pool.close())
    await asyncio.sleep(0.01)

    closer.cancel()
    with pytest.raises(asyncio.CancelledError):
        await closer
    # The idle handle was drained before the cancellation and is closed anyway.
    assert sorted(h.close_calls for h in created) == [0, 1]

    release.set()
    await holder
    await pool.close()

    assert pool.closed
    assert [h.close_calls for h in created] == [1, 1]
    assert pool.available == 0
