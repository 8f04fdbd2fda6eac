"""Tests for ``pgmirror.sync``: hydration, fetch and readiness ordering."""

from __future__ import annotations

import asyncio

import pytest
from conftest import FakeDriverError

from pgmirror.errors import InvalidKeyKindError, NotReadyError, ValueDecodeError
from pgmirror.schema import TableStatements
from pgmirror.settings import HydrationMode
from pgmirror.sync import NOT_FOUND, SyncEngine, SyncState, apply_row


def _engine(pool, hydration=HydrationMode.EAGER, table="items"):
    return SyncEngine(pool, TableStatements(table), hydration)


class TestApplyRow:
    def test_mapping_target(self):
        target = {}
        apply_row(target, "k", 1)
        assert target == {"k": 1}

    def test_set_target(self, collection):
        apply_row(collection, "k", 1)
        assert collection.set_calls == [("k", 1)]


class TestNotFound:
    def test_falsy(self):
        assert not NOT_FOUND

    def test_repr(self):
        assert repr(NOT_FOUND) == "NOT_FOUND"


class TestEagerInit:
    @pytest.mark.asyncio
    async def test_hydrates_every_row_decoded(self, fake_pool, collection):
        fake_pool.seed("items", {"a": "plain", "b": '{"x":1}', "c": "[1,2]"})
        engine = _engine(fake_pool)

        signal = await engine.init(collection)

        assert signal.is_ready
        assert engine.state is SyncState.READY
        assert dict(collection) == {"a": "plain", "b": {"x": 1}, "c": [1, 2]}

    @pytest.mark.asyncio
    async def test_creates_table_before_scanning(self, fake_pool, collection):
        await _engine(fake_pool).init(collection)
        verbs = [sql.split(" ")[0] for sql, _ in fake_pool.statements]
        assert verbs == ["CREATE", "SELECT"]

    @pytest.mark.asyncio
    async def test_empty_table(self, fake_pool, collection):
        await _engine(fake_pool).init(collection)
        assert len(collection) == 0

    @pytest.mark.asyncio
    async def test_requires_target(self, fake_pool):
        with pytest.raises(TypeError):
            await _engine(fake_pool).init()
        assert fake_pool.statements == []

    @pytest.mark.asyncio
    async def test_second_init_is_noop(self, fake_pool, collection):
        engine = _engine(fake_pool)
        first = await engine.init(collection)
        count = len(fake_pool.statements)

        second = await engine.init(collection)

        assert second is first
        assert len(fake_pool.statements) == count


class TestLazyInit:
    @pytest.mark.asyncio
    async def test_does_not_touch_target(self, fake_pool, collection):
        fake_pool.seed("items", {"a": "1"})
        engine = _engine(fake_pool, HydrationMode.LAZY)

        await engine.init(collection)

        assert engine.state is SyncState.READY
        assert collection.set_calls == []
        assert fake_pool.executed("SELECT") == []

    @pytest.mark.asyncio
    async def test_target_optional(self, fake_pool):
        signal = await _engine(fake_pool, HydrationMode.LAZY).init()
        assert signal.is_ready


class TestInitFailure:
    @pytest.mark.asyncio
    async def test_schema_failure_leaves_signal_unfired(self, fake_pool, collection):
        fake_pool.fail_on("CREATE TABLE")
        engine = _engine(fake_pool)

        with pytest.raises(FakeDriverError):
            await engine.init(collection)

        assert engine.state is SyncState.UNSTARTED
        assert not engine.ready.is_ready
        with pytest.raises(asyncio.TimeoutError):
            await engine.ready.wait(timeout=0.01)

    @pytest.mark.asyncio
    async def test_decode_failure_during_hydration(self, fake_pool, collection):
        fake_pool.seed("items", {"bad": "[not json"})
        engine = _engine(fake_pool)

        with pytest.raises(ValueDecodeError):
            await engine.init(collection)

        assert engine.state is SyncState.UNSTARTED
        assert not engine.ready.is_ready

    @pytest.mark.asyncio
    async def test_retry_after_failure(self, fake_pool, collection):
        fake_pool.fail_on("SELECT key, value")
        engine = _engine(fake_pool)
        with pytest.raises(FakeDriverError):
            await engine.init(collection)

        fake_pool.clear_failures()
        await engine.init(collection)

        assert engine.ready.is_ready

    @pytest.mark.asyncio
    async def test_concurrent_init_rejected(self, fake_pool, collection):
        engine = _engine(fake_pool)
        engine.state = SyncState.HYDRATING

        with pytest.raises(NotReadyError, match="in progress"):
            await engine.init(collection)


class TestWaitersBeforeInit:
    @pytest.mark.asyncio
    async def test_waiter_released_when_init_finishes(self, fake_pool, collection):
        engine = _engine(fake_pool)
        waiter = asyncio.create_task(engine.ready.wait())
        await asyncio.sleep(0)
        assert not waiter.done()

        await engine.init(collection)

        await asyncio.wait_for(waiter, timeout=1)


class TestFetch:
    @pytest.mark.asyncio
    async def test_found(self, fake_pool):
        fake_pool.seed("items", {"42": '{"a":1}'})
        engine = _engine(fake_pool, HydrationMode.LAZY)
        await engine.init()

        assert await engine.fetch("42") == {"a": 1}

    @pytest.mark.asyncio
    async def test_numeric_key_looked_up_as_text(self, fake_pool):
        fake_pool.seed("items", {"42": "answer"})
        engine = _engine(fake_pool, HydrationMode.LAZY)
        await engine.init()

        assert await engine.fetch(42) == "answer"
        assert fake_pool.executed("SELECT value")[-1][1] == ("42",)

    @pytest.mark.asyncio
    async def test_missing_key_returns_sentinel(self, fake_pool):
        engine = _engine(fake_pool, HydrationMode.LAZY)
        await engine.init()

        assert await engine.fetch("nope") is NOT_FOUND

    @pytest.mark.asyncio
    async def test_does_not_populate_target(self, fake_pool, collection):
        fake_pool.seed("items", {"k": "v"})
        engine = _engine(fake_pool, HydrationMode.LAZY)
        await engine.init(collection)

        await engine.fetch("k")

        assert collection.set_calls == []

    @pytest.mark.asyncio
    async def test_before_init_rejected(self, fake_pool):
        engine = _engine(fake_pool, HydrationMode.LAZY)
        with pytest.raises(NotReadyError) as exc_info:
            await engine.fetch("k")
        assert exc_info.value.context.operation == "fetch"
        assert fake_pool.statements == []

    @pytest.mark.asyncio
    async def test_invalid_key_rejected_before_query(self, fake_pool):
        engine = _engine(fake_pool, HydrationMode.LAZY)
        await engine.init()
        sent = len(fake_pool.statements)

        with pytest.raises(InvalidKeyKindError):
            await engine.fetch("")

        assert len(fake_pool.statements) == sent


class TestFetchAll:
    @pytest.mark.asyncio
    async def test_refreshes_init_target(self, fake_pool, collection):
        engine = _engine(fake_pool)
        await engine.init(collection)
        fake_pool.seed("items", {"late": "row"})

        assert await engine.fetch_all() == 1
        assert collection.get("late") == "row"

    @pytest.mark.asyncio
    async def test_explicit_target(self, fake_pool):
        fake_pool.seed("items", {"a": "1", "b": "2"})
        engine = _engine(fake_pool, HydrationMode.LAZY)
        await engine.init()
        target = {}

        assert await engine.fetch_all(target) == 2
        assert target == {"a": "1", "b": "2"}

    @pytest.mark.asyncio
    async def test_lazy_without_any_target(self, fake_pool):
        engine = _engine(fake_pool, HydrationMode.LAZY)
        await engine.init()
        with pytest.raises(TypeError):
            await engine.fetch_all()

    @pytest.mark.asyncio
    async def test_before_init_rejected(self, fake_pool):
        with pytest.raises(NotReadyError):
            await _engine(fake_pool).fetch_all({})
