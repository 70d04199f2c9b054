from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Float, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from yournal.db.base import Base
from yournal.utils.time_utils import utc_now


class JournalEntry(Base):
    """A journal entry owned by one user.

    ``body_text`` is the plain-text extraction of the rich-text content and is
    the only field retrieval reads. The embedding is stored as a JSON array
    with its precomputed norm; rows without one are skipped by vector search.
    """

    __tablename__ = "journal_entries"
    __table_args__ = (Index("ix_journal_entries_user_created", "user_id", "created_at"),)

    id: Mapped[str] = mapped_column(String, primary_key=True)
    user_id: Mapped[str] = mapped_column(String, nullable=False)
    body_text: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    embedding_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    embedding_norm: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    embedding_model: Mapped[Optional[str]] = mapped_column(String, nullable=True)
