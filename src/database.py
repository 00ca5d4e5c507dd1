import logging
from datetime import datetime, timezone

from sqlalchemy import event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import Session, declarative_base

from config import DATABASE_URL, STORAGE_READ_ATTEMPTS
from compliance.errors import StorageError

logger = logging.getLogger(__name__)

engine = create_async_engine(DATABASE_URL)

SessionLocal = async_sessionmaker(engine, class_=AsyncSession, autoflush=False, expire_on_commit=False)

Base = declarative_base()

PENDING_WRITES = "pending_writes"


@event.listens_for(Session, "after_flush")
def _track_flush(session, flush_context):
    session.info[PENDING_WRITES] = True


@event.listens_for(Session, "do_orm_execute")
def _track_bulk_write(orm_execute_state):
    if not orm_execute_state.is_select:
        orm_execute_state.session.info[PENDING_WRITES] = True


@event.listens_for(Session, "after_transaction_end")
def _clear_writes(session, transaction):
    if transaction.parent is None:
        session.info.pop(PENDING_WRITES, None)


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


async def get_db():
    async with SessionLocal() as db:
        yield db


async def commit(db: AsyncSession) -> None:
    try:
        await db.commit()
    except SQLAlchemyError as exc:
        logger.error("Commit failed: %s", exc)
        await db.rollback()
        raise StorageError("Could not persist changes") from exc


class BaseRepository:
    """Shared plumbing for the table repositories.

    Reads are idempotent and retried a bounded number of times; writes are
    flushed once and never retried, so a failed write surfaces to the caller.
    Between read attempts the session is rolled back only when that loses
    nothing: no uncommitted writes and no loaded instances to expire.
    """

    def __init__(self, db_session: AsyncSession, read_attempts: int = STORAGE_READ_ATTEMPTS):
        self.db = db_session
        self.read_attempts = max(1, read_attempts)

    async def _scalars(self, stmt) -> list:
        result = await self._read(stmt)
        return list(result.scalars().all())

    async def _scalar(self, stmt):
        result = await self._read(stmt)
        return result.scalars().first()

    async def _read(self, stmt):
        return await self._with_retries("Read", lambda: self.db.execute(stmt))

    async def _get(self, model, ident):
        return await self._with_retries("Lookup", lambda: self.db.get(model, ident))

    async def _with_retries(self, label, operation):
        for attempt in range(1, self.read_attempts + 1):
            try:
                return await operation()
            except SQLAlchemyError as exc:
                logger.warning("%s attempt %d/%d failed: %s", label, attempt, self.read_attempts, exc)
                if attempt == self.read_attempts:
                    raise StorageError("Storage read failed") from exc
                if self._can_reset():
                    # some databases refuse every statement after a failure until rollback
                    await self.db.rollback()

    def _can_reset(self) -> bool:
        return not self.db.info.get(PENDING_WRITES) and len(self.db.identity_map) == 0

    async def _add(self, instance):
        self.db.add(instance)
        await self._flush()
        return instance

    async def _flush(self) -> None:
        try:
            await self.db.flush()
        except SQLAlchemyError as exc:
            logger.error("Flush failed: %s", exc)
            raise StorageError("Storage write failed") from exc
