"""
Database models and the SQL-backed history store for Calc Service.

Uses SQLAlchemy async; SQLite through aiosqlite by default, PostgreSQL
through asyncpg when the URL asks for it.
"""

import asyncio
from datetime import datetime, timezone

from sqlalchemy import DateTime, Float, Integer, String, Text, TypeDecorator, func, select, update
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from calc_service.errors import InvalidTransitionError, RecordNotFoundError
from calc_service.models import CalculationRecord, CalculationStatus, ErrorCode
from calc_service.store import HistoryStore, utcnow


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware timestamp column.

    Values are stored in UTC. SQLite drops the offset, so naive values read
    back from it are tagged as UTC.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None and value.tzinfo is not None:
            return value.astimezone(timezone.utc)
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


# =============================================================================
# Database Models
# =============================================================================

class CalculationDB(Base):
    """Database model for calculation records."""

    __tablename__ = "calculations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    expression: Mapped[str] = mapped_column(Text, nullable=False)

    # Status
    status: Mapped[str] = mapped_column(
        String(16), default=CalculationStatus.PENDING.value, index=True
    )
    result: Mapped[float | None] = mapped_column(Float, nullable=True)
    error: Mapped[str | None] = mapped_column(String(32), nullable=True)
    error_detail: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Timing
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(timezone=True), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(timezone=True), nullable=True)


def to_record(row: CalculationDB) -> CalculationRecord:
    """Build a frozen record snapshot from a database row."""
    return CalculationRecord.model_validate(row)


# =============================================================================
# Engine and Session
# =============================================================================

def create_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create the async engine for a database URL."""
    return create_async_engine(database_url, echo=echo)


async def init_db(engine: AsyncEngine) -> None:
    """Initialize the database schema."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


# =============================================================================
# Store
# =============================================================================

class SqlHistoryStore(HistoryStore):
    """
    History store persisted in a SQL database.

    Terminal transitions are conditional updates guarded by
    ``status = 'pending'``, so a record reaches a terminal state at most
    once even when several processes share the database. Within one
    process the store lock also serializes snapshot reads against writes.
    """

    def __init__(self, database_url: str, echo: bool = False):
        self.engine = create_engine(database_url, echo=echo)
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        self._lock = asyncio.Lock()

    async def init(self) -> None:
        await init_db(self.engine)

    async def close(self) -> None:
        await self.engine.dispose()

    async def create(self, expression: str) -> CalculationRecord:
        async with self._lock, self.session_factory() as db:
            row = CalculationDB(
                expression=expression,
                status=CalculationStatus.PENDING.value,
                created_at=utcnow(),
            )
            db.add(row)
            await db.commit()
            await db.refresh(row)
            return to_record(row)

    async def complete(self, record_id: int, result: float) -> CalculationRecord:
        return await self._transition(
            record_id,
            status=CalculationStatus.SUCCEEDED.value,
            result=result,
            completed_at=utcnow(),
        )

    async def fail(
        self,
        record_id: int,
        error: ErrorCode,
        detail: str | None = None,
    ) -> CalculationRecord:
        return await self._transition(
            record_id,
            status=CalculationStatus.FAILED.value,
            error=ErrorCode(error).value,
            error_detail=detail,
            completed_at=utcnow(),
        )

    async def get(self, record_id: int) -> CalculationRecord:
        async with self._lock, self.session_factory() as db:
            row = await db.get(CalculationDB, record_id)
            if row is None:
                raise RecordNotFoundError(record_id)
            return to_record(row)

    async def list(self) -> list[CalculationRecord]:
        async with self._lock, self.session_factory() as db:
            result = await db.execute(select(CalculationDB).order_by(CalculationDB.id))
            return [to_record(row) for row in result.scalars().all()]

    async def count_pending(self) -> int:
        async with self._lock, self.session_factory() as db:
            result = await db.execute(
                select(func.count())
                .select_from(CalculationDB)
                .where(CalculationDB.status == CalculationStatus.PENDING.value)
            )
            return result.scalar_one()

    async def _transition(self, record_id: int, **values) -> CalculationRecord:
        async with self._lock, self.session_factory() as db:
            result = await db.execute(
                update(CalculationDB)
                .where(CalculationDB.id == record_id)
                .where(CalculationDB.status == CalculationStatus.PENDING.value)
                .values(**values)
            )
            await db.commit()

            row = await db.get(CalculationDB, record_id, populate_existing=True)
            if row is None:
                raise RecordNotFoundError(record_id)
            if result.rowcount == 0:
                raise InvalidTransitionError(record_id, row.status)
            return to_record(row)
