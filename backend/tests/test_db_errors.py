import asyncio
import logging

import pytest
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from app import db
from app.db_errors import persistence_guard, with_timeout
from app.exceptions import NotFound, PersistenceError, PersistenceTimeout


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.mark.anyio
async def test_store_failures_become_persistence_errors(caplog):
    db.get_engine()
    async with db.AsyncSessionLocal() as session:
        with caplog.at_level(logging.ERROR):
            with pytest.raises(PersistenceError) as exc:
                async with persistence_guard(session, "record point"):
                    await session.execute(text("SELECT * FROM no_such_table"))
        assert isinstance(exc.value.__cause__, OperationalError)
        assert exc.value.status_code == 500
        assert exc.value.detail == "failed to record point"
        assert "Persistence failure during record point" in caplog.text

        # The session was rolled back and stays usable.
        assert (await session.execute(text("SELECT 1"))).scalar() == 1


@pytest.mark.anyio
async def test_domain_errors_pass_through_guard():
    db.get_engine()
    async with db.AsyncSessionLocal() as session:
        with pytest.raises(NotFound):
            async with persistence_guard(session, "load match"):
                raise NotFound("match", "m1")


@pytest.mark.anyio
async def test_with_timeout_raises_retryable_error():
    with pytest.raises(PersistenceTimeout) as exc:
        await with_timeout(asyncio.sleep(1), "record point", timeout=0.01)
    assert exc.value.status_code == 503
    assert exc.value.code == "persistence_timeout"


@pytest.mark.anyio
async def test_with_timeout_returns_result():
    async def work():
        return 42

    assert await with_timeout(work(), "read score", timeout=1) == 42
