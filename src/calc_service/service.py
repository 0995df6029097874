"""
Calculation service for Calc Service.

Manages the per-submission pipeline:
CREATE (pending) → TOKENIZE → PARSE → EVALUATE → COMPLETE | FAIL

In sync mode the pipeline runs inline and submit() returns the terminal
record. In async mode submit() returns the pending record and the worker
pool finishes it; callers poll get() or list().
"""

import asyncio
import contextlib

import structlog

from calc_service.config import EvaluationMode, Settings
from calc_service.errors import CalculationError, InvalidTransitionError, StoreError
from calc_service.evaluator import evaluate
from calc_service.models import CalculationRecord, ErrorCode
from calc_service.parser import parse_expression
from calc_service.store import HistoryStore
from calc_service.workers import EvaluationWorkerPool

logger = structlog.get_logger()


class CalculationService:
    """
    Orchestrates submissions against the history store.

    Malformed user input never raises out of submit(); it becomes a failed
    record with a stable error code. Store errors are internal invariant
    violations and are logged and re-raised.
    """

    def __init__(
        self,
        store: HistoryStore,
        settings: Settings | None = None,
        pool: EvaluationWorkerPool | None = None,
    ):
        self.store = store
        self.settings = settings or Settings()
        self.pool = pool

        if self.mode is EvaluationMode.ASYNC and pool is None:
            raise ValueError("Async evaluation mode requires a worker pool")

    @property
    def mode(self) -> EvaluationMode:
        return self.settings.evaluation_mode

    def evaluate_text(self, text: str) -> float:
        """
        Run the tokenizer, parser and evaluator over an expression.

        Raises:
            CalculationError: LexError, ExpressionSyntaxError or EvaluationError.
        """
        tree = parse_expression(
            text,
            max_depth=self.settings.max_nesting_depth,
            max_length=self.settings.max_expression_length,
        )
        return evaluate(tree)

    async def submit(self, text: str) -> CalculationRecord:
        """Record a submission and evaluate it according to the evaluation mode."""
        try:
            record = await self.store.create(text)
            logger.info("Calculation submitted", record_id=record.id, mode=self.mode.value)

            if self.mode is EvaluationMode.ASYNC:
                if not self.pool.running:
                    logger.error("Worker pool is not running", record_id=record.id)
                    return await self.store.fail(
                        record.id, ErrorCode.CANCELLED, "Evaluation workers are not running"
                    )
                await self.pool.enqueue(record.id, text)
                return record

            return await self._evaluate_inline(record)
        except StoreError as e:
            logger.exception("History store invariant violated", error=str(e))
            raise

    async def get(self, record_id: int) -> CalculationRecord:
        """Return one record."""
        return await self.store.get(record_id)

    async def list(self) -> list[CalculationRecord]:
        """Return the full history, oldest first."""
        return await self.store.list()

    async def _evaluate_inline(self, record: CalculationRecord) -> CalculationRecord:
        try:
            try:
                value = self.evaluate_text(record.expression)
            except CalculationError as e:
                logger.info(
                    "Calculation failed",
                    record_id=record.id,
                    stage=e.stage,
                    error=e.code.value,
                )
                return await self.store.fail(record.id, e.code, e.message)

            logger.info("Calculation succeeded", record_id=record.id, result=value)
            return await self.store.complete(record.id, value)
        except asyncio.CancelledError:
            with contextlib.suppress(InvalidTransitionError):
                await asyncio.shield(
                    self.store.fail(record.id, ErrorCode.CANCELLED, "Evaluation was cancelled")
                )
            raise
