from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from yournal.db.models import JournalEntry
from yournal.utils.time_utils import ensure_utc, utc_now


class EntryRepo:
    """Repository for journal entry reads used by retrieval."""

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def add_entry(
        self,
        *,
        entry_id: str,
        user_id: str,
        body_text: str,
        created_at: Optional[datetime] = None,
    ) -> JournalEntry:
        """Insert an entry row (used by seeding and tests)."""

        entry = JournalEntry(
            id=entry_id,
            user_id=user_id,
            body_text=body_text,
            created_at=ensure_utc(created_at) if created_at else utc_now(),
        )
        self._db.add(entry)
        await self._db.flush()
        return entry

    async def get_entry(self, user_id: str, entry_id: str) -> Optional[JournalEntry]:
        result = await self._db.execute(
            select(JournalEntry).where(
                JournalEntry.user_id == user_id,
                JournalEntry.id == entry_id,
            )
        )
        return result.scalar_one_or_none()

    async def list_in_window(
        self, *, user_id: str, start: datetime, end: datetime, limit: int
    ) -> list[JournalEntry]:
        """List entries created in ``[start, end)``, newest first."""

        stmt = (
            select(JournalEntry)
            .where(
                JournalEntry.user_id == user_id,
                JournalEntry.created_at >= start,
                JournalEntry.created_at < end,
            )
            .order_by(JournalEntry.created_at.desc())
            .limit(limit)
        )
        result = await self._db.execute(stmt)
        return list(result.scalars())

    async def list_recent(self, *, user_id: str, limit: int) -> list[JournalEntry]:
        """List the user's most recent entries, newest first."""

        stmt = (
            select(JournalEntry)
            .where(JournalEntry.user_id == user_id)
            .order_by(JournalEntry.created_at.desc())
            .limit(limit)
        )
        result = await self._db.execute(stmt)
        return list(result.scalars())

    async def list_with_vectors(self, *, user_id: str) -> list[JournalEntry]:
        """List entries that already carry an embedding."""

        stmt = (
            select(JournalEntry)
            .where(
                JournalEntry.user_id == user_id,
                JournalEntry.embedding_json.is_not(None),
            )
            .order_by(JournalEntry.created_at.desc())
        )
        result = await self._db.execute(stmt)
        return list(result.scalars())

    async def list_texts(self, *, user_id: str, limit: int) -> list[JournalEntry]:
        """List non-empty entries for lexical scoring, newest first."""

        stmt = (
            select(JournalEntry)
            .where(JournalEntry.user_id == user_id, JournalEntry.body_text != "")
            .order_by(JournalEntry.created_at.desc())
            .limit(limit)
        )
        result = await self._db.execute(stmt)
        return list(result.scalars())

    async def update_embedding(
        self,
        *,
        entry: JournalEntry,
        vector_json: str,
        vector_norm: float,
        model_name: str,
    ) -> JournalEntry:
        """Persist a computed embedding onto an entry."""

        entry.embedding_json = vector_json
        entry.embedding_norm = vector_norm
        entry.embedding_model = model_name
        await self._db.flush()
        return entry
