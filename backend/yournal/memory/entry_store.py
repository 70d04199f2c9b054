from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from yournal.db.models import JournalEntry
from yournal.memory.types import MemoryRecord
from yournal.repos.entry_repo import EntryRepo
from yournal.utils.time_utils import ensure_utc


class StoreError(RuntimeError):
    """Raised when the entry store cannot serve a read."""


class EntryStore(ABC):
    """Date- and recency-ordered reads over a user's entries."""

    @abstractmethod
    async def list_in_window(
        self, *, user_id: str, start: datetime, end: datetime, limit: int
    ) -> list[MemoryRecord]:
        """Entries created in ``[start, end)``, newest first."""

    @abstractmethod
    async def list_recent(self, *, user_id: str, limit: int) -> list[MemoryRecord]:
        """The user's most recent entries, newest first."""


class SQLEntryStore(EntryStore):
    """Entry store backed by the SQLAlchemy ``journal_entries`` table."""

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self._sessionmaker = sessionmaker

    async def list_in_window(
        self, *, user_id: str, start: datetime, end: datetime, limit: int
    ) -> list[MemoryRecord]:
        async with read_session(self._sessionmaker) as db:
            rows = await EntryRepo(db).list_in_window(
                user_id=user_id,
                start=ensure_utc(start),
                end=ensure_utc(end),
                limit=limit,
            )
        return [to_record(row) for row in rows]

    async def list_recent(self, *, user_id: str, limit: int) -> list[MemoryRecord]:
        async with read_session(self._sessionmaker) as db:
            rows = await EntryRepo(db).list_recent(user_id=user_id, limit=limit)
        return [to_record(row) for row in rows]


def to_record(entry: JournalEntry) -> MemoryRecord:
    """Project an ORM row onto the read-only record type."""

    return MemoryRecord(
        id=entry.id,
        body_text=entry.body_text or "",
        created_at=ensure_utc(entry.created_at),
    )


@asynccontextmanager
async def read_session(
    sessionmaker: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    try:
        async with sessionmaker() as db:
            yield db
    except SQLAlchemyError as exc:
        raise StoreError("Entry store query failed") from exc
    except OSError as exc:
        raise StoreError("Entry store is unreachable") from exc
