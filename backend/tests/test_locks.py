import asyncio

import pytest

from app.locks import KeyedLock


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.mark.anyio
async def test_same_key_is_serialized():
    locks = KeyedLock()
    trace: list[str] = []

    async def worker(name: str) -> None:
        async with locks.hold("m1"):
            trace.append(f"{name}:in")
            await asyncio.sleep(0.01)
            trace.append(f"{name}:out")

    await asyncio.gather(worker("a"), worker("b"), worker("c"))
    # Never two holders at once: every "in" is followed by its own "out".
    for i in range(0, len(trace), 2):
        assert trace[i].split(":")[0] == trace[i + 1].split(":")[0]


@pytest.mark.anyio
async def test_different_keys_do_not_contend():
    locks = KeyedLock()
    entered = asyncio.Event()

    async def holder() -> None:
        async with locks.hold("m1"):
            await asyncio.wait_for(entered.wait(), timeout=1)

    async def other() -> None:
        async with locks.hold("m2"):
            entered.set()

    await asyncio.gather(holder(), other())


@pytest.mark.anyio
async def test_locks_are_dropped_when_idle():
    locks = KeyedLock()
    async with locks.hold("m1"):
        assert locks.active_keys() == {"m1"}
    assert locks.active_keys() == set()

    with pytest.raises(RuntimeError):
        async with locks.hold("m2"):
            raise RuntimeError("boom")
    assert locks.active_keys() == set()
