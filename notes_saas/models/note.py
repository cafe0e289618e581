"""
models/note.py
--------------
Note ORM model.

Only the fields needed for ownership, tenant isolation and quota accounting
live here. tenant_id is denormalised (it could be derived via
user.tenant_id) to allow efficient tenant-scoped queries without a JOIN.

Notes are soft-deleted. Every live note is counted in its tenant's
current_note_count; the credential store creates / soft-deletes a note and
moves the counter in the same transaction.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from notes_saas.db.base import Base, TimestampMixin, UTCDateTime

NOTE_MUTABLE_FIELDS = frozenset({"title", "content"})


class Note(Base, TimestampMixin):
    __tablename__ = "notes"
    __table_args__ = (Index("ix_notes_tenant_deleted", "tenant_id", "is_deleted"),)

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")

    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    tenant_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    deleted_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    @classmethod
    def new(cls, title: str, content: str, user_id: str, tenant_id: str) -> "Note":
        return cls(
            id=str(uuid.uuid4()),
            title=title,
            content=content,
            user_id=user_id,
            tenant_id=tenant_id,
            is_deleted=False,
            deleted_at=None,
            deleted_by=None,
        )

    def __repr__(self) -> str:
        return f"<Note id={self.id} tenant_id={self.tenant_id}>"
