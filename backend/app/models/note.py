"""
AiNote Backend — Note SQLAlchemy Model
========================================

What:  ORM model representing the `notes` table.
How:   Inherits from the shared DeclarativeBase; the table is created by the
       store's startup connection attempt (metadata.create_all).
Who:   Used by NoteWorkflow for all reads and writes.

Table Design:
    - id: integer assigned by the database on insert (autoincrement)
    - user_note: the text the user wrote
    - ai_note: the AI suggestion; NULL until the note is annotated
    - created_at: set when the row is written (UTC)

    Index on created_at serves the only listing query
    (ORDER BY created_at DESC, id DESC).
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, Index, Integer, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class Note(Base):
    """
    A user note, optionally enriched with one AI suggestion.

    Lifecycle:
        1. Inserted with ai_note NULL (plain note) or with both texts
           (annotated in a single write)
        2. ai_note may go from NULL to a value exactly once
        3. Deleted individually or in bulk; no other field ever changes
    """

    __tablename__ = "notes"

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )

    user_note: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="Note text written by the user",
    )

    ai_note: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        default=None,
        comment="AI suggestion; NULL until annotated",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
        comment="When this note was written (UTC)",
    )

    __table_args__ = (
        Index("idx_notes_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Note(id={self.id}, annotated={self.ai_note is not None}, "
            f"created_at='{self.created_at}')>"
        )
