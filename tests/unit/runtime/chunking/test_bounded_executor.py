"""Unit tests for bounded-concurrency execution."""

import asyncio
from dataclasses import dataclass

import pytest

from laakhay.retro.cache import CacheStore
from laakhay.retro.core import ConfigurationError, PipelineConfig, TaskExecutionError
from laakhay.retro.core.exceptions import TaskTimeoutError
from laakhay.retro.runtime.chunking import BoundedExecutor, Failure, Success


@dataclass(frozen=True)
class Unit:
    id: str
    cache_key: str | None = None
    delay: float = 0.0


def units(count: int, *, cached: bool = False, delay: float = 0.0) -> list[Unit]:
    return [
        Unit(id=f"u{i}", cache_key=f"key{i}" if cached else None, delay=delay) for i in range(count)
    ]


class TestBoundedExecutor:
    """Test BoundedExecutor functionality."""

    @pytest.mark.asyncio
    async def test_every_unit_gets_exactly_one_result(self):
        """Test one result per unit."""
        executor = BoundedExecutor(max_concurrency=3)

        async def execute(unit: Unit) -> str:
            return unit.id.upper()

        results = await executor.run(units(7), execute)

        assert [r.chunk_id for r in results] == [f"u{i}" for i in range(7)]
        assert all(r.succeeded for r in results)
        assert [r.payload for r in results] == [f"U{i}" for i in range(7)]

    @pytest.mark.asyncio
    async def test_empty_input(self):
        """Test running with no units."""
        async def execute(unit: Unit) -> None:
            raise AssertionError("not called")

        assert await BoundedExecutor().run([], execute) == []

    @pytest.mark.asyncio
    async def test_concurrency_ceiling(self):
        """Test that no more than max_concurrency units run at once."""
        executor = BoundedExecutor(max_concurrency=3)
        active = 0
        peak = 0

        async def execute(unit: Unit) -> str:
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return unit.id

        results = await executor.run(units(10), execute)

        assert len(results) == 10
        assert peak == 3
        assert executor.peak_in_flight == 3
        assert executor.in_flight == 0

    @pytest.mark.asyncio
    async def test_results_keep_input_order(self):
        """Test that results follow input order, not completion order."""
        executor = BoundedExecutor(max_concurrency=4)
        # Later units finish first
        work = [Unit(id=f"u{i}", delay=0.04 - i * 0.01) for i in range(4)]
        completion: list[str] = []

        async def execute(unit: Unit) -> str:
            await asyncio.sleep(unit.delay)
            return unit.id

        results = await executor.run(
            work, execute, on_settled=lambda index, unit, result: completion.append(unit.id)
        )

        assert [r.chunk_id for r in results] == ["u0", "u1", "u2", "u3"]
        assert completion == ["u3", "u2", "u1", "u0"]

    @pytest.mark.asyncio
    async def test_failure_is_captured_and_siblings_continue(self):
        """Test that a raising unit does not stop the others."""
        executor = BoundedExecutor(max_concurrency=2)

        async def execute(unit: Unit) -> str:
            if unit.id == "u1":
                raise RuntimeError("upstream returned 502")
            return unit.id

        results = await executor.run(units(3), execute)

        assert [r.succeeded for r in results] == [True, False, True]
        failure = results[1].outcome
        assert isinstance(failure, Failure)
        assert failure.error_type == "TaskExecutionError"
        assert failure.reason == "upstream returned 502"
        assert isinstance(failure.error, RuntimeError)
        assert not isinstance(failure.error, TaskExecutionError)

    @pytest.mark.asyncio
    async def test_timeout_becomes_failure(self):
        """Test per-unit timeout."""
        executor = BoundedExecutor(max_concurrency=2, timeout_ms=50)

        async def execute(unit: Unit) -> str:
            if unit.id == "u0":
                await asyncio.sleep(5)
            return unit.id

        results = await executor.run(units(3), execute)

        assert not results[0].succeeded
        assert results[0].outcome.error_type == "TaskTimeout"
        assert isinstance(results[0].outcome.error, TaskTimeoutError)
        assert results[0].outcome.error.timeout_ms == 50
        assert results[1].succeeded
        assert results[2].succeeded

    @pytest.mark.asyncio
    async def test_timeout_without_cancellation_detaches_call(self):
        """Test that a timed-out call keeps running when cancellation is off."""
        executor = BoundedExecutor(max_concurrency=1, timeout_ms=20, cancel_on_timeout=False)
        release = asyncio.Event()
        finished: list[str] = []

        async def execute(unit: Unit) -> str:
            if unit.id == "u0":
                await release.wait()
            finished.append(unit.id)
            return unit.id

        results = await executor.run(units(2), execute)

        assert results[0].outcome.error_type == "TaskTimeout"
        assert results[1].succeeded
        assert executor.orphaned == 1
        # The slot was released: u1 ran while u0 was still pending
        assert finished == ["u1"]

        release.set()
        for _ in range(3):
            await asyncio.sleep(0)
        assert finished == ["u1", "u0"]
        assert executor.orphaned == 0

    @pytest.mark.asyncio
    async def test_cache_short_circuits_execution(self):
        """Test that a cached payload skips execution."""
        cache = CacheStore()
        executor = BoundedExecutor(cache, max_concurrency=2)
        calls: list[str] = []

        async def execute(unit: Unit) -> dict:
            calls.append(unit.id)
            return {"id": unit.id}

        first = await executor.run(units(3, cached=True), execute)
        second = await executor.run(units(3, cached=True), execute)

        assert calls == ["u0", "u1", "u2"]
        assert not any(r.from_cache for r in first)
        assert all(r.from_cache for r in second)
        assert [r.payload for r in second] == [r.payload for r in first]

    @pytest.mark.asyncio
    async def test_failures_and_none_payloads_are_not_cached(self):
        """Test that only real payloads are cached."""
        cache = CacheStore()
        executor = BoundedExecutor(cache)

        async def execute(unit: Unit) -> None:
            if unit.id == "u0":
                raise RuntimeError("boom")
            return None

        results = await executor.run(units(2, cached=True), execute)

        assert [r.succeeded for r in results] == [False, True]
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_run_deadline_fails_pending_units(self):
        """Test the run deadline."""
        executor = BoundedExecutor(max_concurrency=1, timeout_ms=10_000)
        settled: list[str] = []

        async def execute(unit: Unit) -> str:
            if unit.id != "u0":
                await asyncio.sleep(5)
            return unit.id

        results = await executor.run(
            units(3),
            execute,
            deadline_ms=50,
            on_settled=lambda index, unit, result: settled.append(unit.id),
        )

        assert results[0].succeeded
        assert [r.outcome.error_type for r in results[1:]] == ["DeadlineExceeded", "DeadlineExceeded"]
        assert sorted(settled) == ["u0", "u1", "u2"]
        assert executor.in_flight == 0

    @pytest.mark.asyncio
    async def test_settled_callback_errors_are_contained(self):
        """Test that a raising settle callback is contained."""
        executor = BoundedExecutor()

        def on_settled(index, unit, result):
            raise RuntimeError("callback bug")

        async def execute(unit: Unit) -> str:
            return unit.id

        results = await executor.run(units(2), execute, on_settled=on_settled)
        assert all(r.succeeded for r in results)

    @pytest.mark.asyncio
    async def test_invalid_limits(self):
        """Test rejection of invalid limits."""
        async def execute(unit: Unit) -> str:
            return unit.id

        with pytest.raises(ConfigurationError):
            BoundedExecutor(max_concurrency=0)
        with pytest.raises(ConfigurationError):
            BoundedExecutor(timeout_ms=0)
        with pytest.raises(ConfigurationError):
            await BoundedExecutor().run(units(1), execute, max_concurrency=0)
        with pytest.raises(ConfigurationError):
            await BoundedExecutor().run(units(1), execute, deadline_ms=0)

    def test_from_config(self):
        """Test building an executor from configuration."""
        config = PipelineConfig(max_concurrency=5, timeout_ms=1000, cancel_on_timeout=False)
        executor = BoundedExecutor.from_config(config)
        assert executor.cache is None

    def test_outcomes(self):
        """Test Success and Failure outcomes."""
        assert Success("x").ok
        assert not Failure("boom").ok
