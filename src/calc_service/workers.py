"""
Deferred evaluation for Calc Service.

A fixed number of asyncio workers pull (record id, expression) jobs off a
queue, evaluate them and move the record to its terminal state. Each
operator in the expression costs a configurable simulated delay. Stopping
the pool fails every job that was queued or in flight with Cancelled, so no
record is left pending.
"""

import asyncio
from dataclasses import dataclass

import structlog

from calc_service.errors import CalculationError, StoreError
from calc_service.evaluator import count_operations, evaluate
from calc_service.models import ErrorCode
from calc_service.parser import DEFAULT_MAX_DEPTH, parse_expression
from calc_service.store import HistoryStore

logger = structlog.get_logger()


@dataclass(frozen=True)
class EvaluationJob:
    """A queued evaluation."""
    record_id: int
    expression: str


class EvaluationWorkerPool:
    """Pool of asyncio workers evaluating submitted expressions."""

    def __init__(
        self,
        store: HistoryStore,
        workers: int = 1,
        operation_delays_ms: dict[str, int] | None = None,
        max_depth: int = DEFAULT_MAX_DEPTH,
        max_length: int | None = None,
        monitor_interval_seconds: float = 0.0,
    ):
        if workers < 1:
            raise ValueError("workers must be at least 1")
        self.store = store
        self.workers = workers
        self.operation_delays_ms = operation_delays_ms or {}
        self.max_depth = max_depth
        self.max_length = max_length
        self.monitor_interval_seconds = monitor_interval_seconds

        self._queue: asyncio.Queue[EvaluationJob] | None = None
        self._tasks: list[asyncio.Task] = []
        self._in_flight: dict[int, EvaluationJob] = {}

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    @property
    def backlog(self) -> int:
        """Jobs queued or being evaluated."""
        queued = self._queue.qsize() if self._queue is not None else 0
        return queued + len(self._in_flight)

    async def start(self) -> None:
        """Spawn the worker tasks (and the monitor, when enabled)."""
        if self.running:
            return
        self._queue = asyncio.Queue()
        for index in range(self.workers):
            self._tasks.append(asyncio.create_task(self._worker(index), name=f"calc-worker-{index}"))
        if self.monitor_interval_seconds > 0:
            self._tasks.append(asyncio.create_task(self._monitor(), name="calc-monitor"))
        logger.info("Worker pool started", workers=self.workers)

    async def enqueue(self, record_id: int, expression: str) -> None:
        """Queue a pending record for evaluation."""
        if self._queue is None:
            raise RuntimeError("Worker pool is not running")
        await self._queue.put(EvaluationJob(record_id=record_id, expression=expression))

    async def join(self) -> None:
        """Wait until every queued job has been processed."""
        if self._queue is not None:
            await self._queue.join()

    async def stop(self) -> None:
        """Cancel the workers and fail every unfinished job."""
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

        abandoned = 0
        while self._queue is not None and not self._queue.empty():
            job = self._queue.get_nowait()
            await self._cancel_job(job)
            self._queue.task_done()
            abandoned += 1

        logger.info("Worker pool stopped", abandoned=abandoned)

    async def _worker(self, index: int) -> None:
        while True:
            job = await self._queue.get()
            self._in_flight[index] = job
            try:
                await self._process(job)
            except asyncio.CancelledError:
                await self._cancel_job(job)
                raise
            except StoreError:
                logger.exception("History store rejected evaluation result", record_id=job.record_id)
            except Exception:
                logger.exception("Evaluation crashed", record_id=job.record_id)
                await self._fail_job(job, ErrorCode.INTERNAL_ERROR, "Evaluation failed unexpectedly")
            finally:
                self._in_flight.pop(index, None)
                self._queue.task_done()

    async def _process(self, job: EvaluationJob) -> None:
        try:
            tree = parse_expression(job.expression, max_depth=self.max_depth, max_length=self.max_length)
            delay_ms = self._simulated_cost_ms(tree)
            if delay_ms:
                await asyncio.sleep(delay_ms / 1000)
            value = evaluate(tree)
        except CalculationError as e:
            await self.store.fail(job.record_id, e.code, e.message)
            logger.info("Calculation failed", record_id=job.record_id, error=e.code.value)
            return

        await self.store.complete(job.record_id, value)
        logger.info("Calculation succeeded", record_id=job.record_id, result=value)

    def _simulated_cost_ms(self, tree) -> int:
        counts = count_operations(tree)
        return sum(self.operation_delays_ms.get(op, 0) * n for op, n in counts.items())

    async def _cancel_job(self, job: EvaluationJob) -> None:
        if await self._fail_job(job, ErrorCode.CANCELLED, "Evaluation was cancelled"):
            logger.warning("Calculation cancelled", record_id=job.record_id)

    async def _fail_job(self, job: EvaluationJob, code: ErrorCode, detail: str) -> bool:
        try:
            await self.store.fail(job.record_id, code, detail)
        except Exception:
            logger.exception("Could not mark calculation as failed", record_id=job.record_id, error=code.value)
            return False
        return True

    async def _monitor(self) -> None:
        while True:
            await asyncio.sleep(self.monitor_interval_seconds)
            if self.backlog:
                logger.info("Pending evaluations", backlog=self.backlog)
