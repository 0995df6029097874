"""
History store for Calc Service.

Holds calculation records behind five operations: create, complete, fail,
get and list. Every mutation and every snapshot read runs under the
store's lock, and records handed out are frozen copies, so a reader never
sees a record mid-transition.
"""

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime, timezone

from calc_service.config import Settings
from calc_service.errors import InvalidTransitionError, RecordNotFoundError
from calc_service.models import CalculationRecord, CalculationStatus, ErrorCode


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class HistoryStore(ABC):
    """Abstract base class for history store backends."""

    async def init(self) -> None:
        """Prepare the backend (create tables, open connections)."""
        pass

    async def close(self) -> None:
        """Release backend resources."""
        pass

    @abstractmethod
    async def create(self, expression: str) -> CalculationRecord:
        """Insert a new pending record and return it."""
        pass

    @abstractmethod
    async def complete(self, record_id: int, result: float) -> CalculationRecord:
        """Move a pending record to succeeded."""
        pass

    @abstractmethod
    async def fail(
        self,
        record_id: int,
        error: ErrorCode,
        detail: str | None = None,
    ) -> CalculationRecord:
        """Move a pending record to failed."""
        pass

    @abstractmethod
    async def get(self, record_id: int) -> CalculationRecord:
        """Return one record or raise RecordNotFoundError."""
        pass

    @abstractmethod
    async def list(self) -> list[CalculationRecord]:
        """Return all records, oldest first."""
        pass

    @abstractmethod
    async def count_pending(self) -> int:
        """Return the number of records still pending."""
        pass


class InMemoryHistoryStore(HistoryStore):
    """Process-local store backed by an insertion-ordered dict."""

    def __init__(self):
        self._records: dict[int, CalculationRecord] = {}
        self._next_id = 1
        self._lock = asyncio.Lock()

    async def create(self, expression: str) -> CalculationRecord:
        async with self._lock:
            record = CalculationRecord(
                id=self._next_id,
                expression=expression,
                status=CalculationStatus.PENDING,
                created_at=utcnow(),
            )
            self._records[record.id] = record
            self._next_id += 1
            return record

    async def complete(self, record_id: int, result: float) -> CalculationRecord:
        async with self._lock:
            record = self._pending(record_id)
            updated = record.model_copy(update={
                "status": CalculationStatus.SUCCEEDED,
                "result": result,
                "completed_at": utcnow(),
            })
            self._records[record_id] = updated
            return updated

    async def fail(
        self,
        record_id: int,
        error: ErrorCode,
        detail: str | None = None,
    ) -> CalculationRecord:
        async with self._lock:
            record = self._pending(record_id)
            updated = record.model_copy(update={
                "status": CalculationStatus.FAILED,
                "error": ErrorCode(error),
                "error_detail": detail,
                "completed_at": utcnow(),
            })
            self._records[record_id] = updated
            return updated

    async def get(self, record_id: int) -> CalculationRecord:
        async with self._lock:
            record = self._records.get(record_id)
            if record is None:
                raise RecordNotFoundError(record_id)
            return record

    async def list(self) -> list[CalculationRecord]:
        async with self._lock:
            return list(self._records.values())

    async def count_pending(self) -> int:
        async with self._lock:
            return sum(1 for r in self._records.values() if not r.is_terminal)

    def _pending(self, record_id: int) -> CalculationRecord:
        record = self._records.get(record_id)
        if record is None:
            raise RecordNotFoundError(record_id)
        if record.is_terminal:
            raise InvalidTransitionError(record_id, record.status.value)
        return record


def create_store(settings: Settings) -> HistoryStore:
    """Build the history store selected by settings.store_backend."""
    if settings.store_backend == "database":
        from calc_service.database import SqlHistoryStore

        return SqlHistoryStore(settings.database_url, echo=settings.database_echo)
    return InMemoryHistoryStore()
