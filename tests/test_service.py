"""
Tests for the calculation service in both evaluation modes.
"""

import asyncio

import pytest

from calc_service.config import EvaluationMode, Settings
from calc_service.errors import CalculationError, RecordNotFoundError
from calc_service.models import CalculationStatus, ErrorCode
from calc_service.service import CalculationService
from calc_service.store import InMemoryHistoryStore
from calc_service.workers import EvaluationWorkerPool


def make_settings(**overrides):
    return Settings(_env_file=None, **overrides)


def submit_sync(*expressions, **overrides):
    """Submit expressions in sync mode; return the records and the final list."""
    async def _run():
        service = CalculationService(InMemoryHistoryStore(), make_settings(**overrides))
        records = [await service.submit(text) for text in expressions]
        return records, await service.list()
    return asyncio.run(_run())


class TestSyncSubmit:
    """Test inline evaluation, where submit returns the terminal record."""

    @pytest.mark.parametrize("expression, expected", [
        ("2+2*2", 6),
        ("(2+2)*2", 8),
        ("10/2/5", 1),
        ("3.5+1.5", 5.0),
        ("  7 - 2 ", 5),
    ])
    def test_succeeds_with_result(self, expression, expected):
        (record,), _ = submit_sync(expression)
        assert record.status is CalculationStatus.SUCCEEDED
        assert record.result == expected
        assert record.error is None

    def test_divide_by_zero_is_a_failed_record(self):
        (record,), _ = submit_sync("1/0")
        assert record.status is CalculationStatus.FAILED
        assert record.error is ErrorCode.DIVIDE_BY_ZERO
        assert record.result is None

    @pytest.mark.parametrize("expression, code", [
        ("2+*2", ErrorCode.UNEXPECTED_TOKEN),
        ("(1+2", ErrorCode.MISSING_CLOSING_PAREN),
        ("", ErrorCode.EMPTY_EXPRESSION),
        ("1+2)", ErrorCode.MISSING_OPENING_PAREN),
    ])
    def test_syntax_problems_are_failed_records(self, expression, code):
        (record,), _ = submit_sync(expression)
        assert record.status is CalculationStatus.FAILED
        assert record.error is code
        assert record.error.stage == "syntax"
        assert record.error_detail

    def test_lex_problem_is_a_failed_record(self):
        (record,), _ = submit_sync("2 + x")
        assert record.error is ErrorCode.UNEXPECTED_CHARACTER
        assert record.error.stage == "lex"

    def test_too_long_expression_is_a_failed_record(self):
        (record,), _ = submit_sync("1+1+1", max_expression_length=3)
        assert record.error is ErrorCode.EXPRESSION_TOO_LONG

    def test_nesting_limit_comes_from_settings(self):
        (record,), _ = submit_sync("((1))", max_nesting_depth=1)
        assert record.error is ErrorCode.TOO_DEEP

    def test_deep_input_at_largest_nesting_limit_fails_cleanly(self):
        deep = "(" * 1500 + "1" + ")" * 1500
        (record,), _ = submit_sync(deep, max_nesting_depth=256)
        assert record.status is CalculationStatus.FAILED
        assert record.error is ErrorCode.TOO_DEEP

    def test_list_refresh_matches_returned_records(self):
        records, listed = submit_sync("1+1", "1/0", "(2")
        assert listed == records

    def test_list_is_insertion_ordered(self):
        _, listed = submit_sync("1", "2", "3")
        assert [r.expression for r in listed] == ["1", "2", "3"]


class TestServiceQueries:
    """Test get, list and direct evaluation."""

    def setup_method(self):
        self.service = CalculationService(InMemoryHistoryStore(), make_settings())

    def test_evaluate_text(self):
        assert self.service.evaluate_text("6*7") == 42

    def test_evaluate_text_raises_calculation_error(self):
        with pytest.raises(CalculationError):
            self.service.evaluate_text("6*")

    def test_get_returns_submitted_record(self):
        async def _run():
            record = await self.service.submit("4/2")
            return record, await self.service.get(record.id)

        record, fetched = asyncio.run(_run())
        assert fetched == record

    def test_get_unknown_raises(self):
        with pytest.raises(RecordNotFoundError):
            asyncio.run(self.service.get(42))

    def test_list_twice_is_identical(self):
        async def _run():
            await self.service.submit("1+2")
            await self.service.submit("1/0")
            return await self.service.list(), await self.service.list()

        first, second = asyncio.run(_run())
        assert first == second

    def test_terminal_records_never_change(self):
        async def _run():
            await self.service.submit("1+2")
            await self.service.submit("1/0")
            before = await self.service.list()
            await self.service.submit("3*3")
            return before, await self.service.list()

        before, after = asyncio.run(_run())
        assert after[:len(before)] == before


class TestConcurrentSubmit:
    """Test many submissions at once."""

    def test_concurrent_submits_produce_distinct_ids(self):
        async def _run():
            service = CalculationService(InMemoryHistoryStore(), make_settings())
            records = await asyncio.gather(*(service.submit(f"{i}*2") for i in range(50)))
            return records, await service.list()

        records, listed = asyncio.run(_run())
        assert len({r.id for r in records}) == 50
        assert len(listed) == 50
        assert all(r.status is CalculationStatus.SUCCEEDED for r in listed)
        for record in listed:
            assert record.result == float(record.expression.split("*")[0]) * 2


class TestAsyncSubmit:
    """Test deferred evaluation through the worker pool."""

    def test_async_mode_requires_pool(self):
        with pytest.raises(ValueError):
            CalculationService(InMemoryHistoryStore(), make_settings(evaluation_mode="async"))

    def test_submit_returns_pending_then_list_shows_terminal(self):
        async def _run():
            store = InMemoryHistoryStore()
            pool = EvaluationWorkerPool(store, workers=2)
            service = CalculationService(store, make_settings(evaluation_mode=EvaluationMode.ASYNC), pool=pool)
            await pool.start()
            try:
                submitted = [await service.submit(text) for text in ["2+2*2", "1/0", "(1+2"]]
                await pool.join()
                return submitted, await service.list()
            finally:
                await pool.stop()

        submitted, listed = asyncio.run(_run())
        assert all(r.status is CalculationStatus.PENDING for r in submitted)
        assert [r.status for r in listed] == [
            CalculationStatus.SUCCEEDED,
            CalculationStatus.FAILED,
            CalculationStatus.FAILED,
        ]
        assert listed[0].result == 6
        assert listed[1].error is ErrorCode.DIVIDE_BY_ZERO
        assert listed[2].error is ErrorCode.MISSING_CLOSING_PAREN

    def test_stopped_pool_fails_submission(self):
        async def _run():
            store = InMemoryHistoryStore()
            pool = EvaluationWorkerPool(store)
            service = CalculationService(store, make_settings(evaluation_mode="async"), pool=pool)
            return await service.submit("1+1"), await store.count_pending()

        record, pending = asyncio.run(_run())
        assert record.status is CalculationStatus.FAILED
        assert record.error is ErrorCode.CANCELLED
        assert pending == 0

    def test_concurrent_async_submits(self):
        async def _run():
            store = InMemoryHistoryStore()
            pool = EvaluationWorkerPool(store, workers=4)
            service = CalculationService(store, make_settings(evaluation_mode="async"), pool=pool)
            await pool.start()
            try:
                records = await asyncio.gather(*(service.submit(f"{i}+1") for i in range(40)))
                await pool.join()
                return records, await service.list()
            finally:
                await pool.stop()

        records, listed = asyncio.run(_run())
        assert len({r.id for r in records}) == 40
        assert len(listed) == 40
        assert all(r.status is CalculationStatus.SUCCEEDED for r in listed)
