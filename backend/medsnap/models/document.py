"""
MedSnap Backend — Guideline (Document) SQLAlchemy Model
=========================================================

What:  ORM model for the `guidelines` table: metadata for one uploaded file.
Who:   DocumentRepository (services/data_store.py) and Alembic.

Table Design Rationale:
    - file_path stores the stable blob path, never a URL. Signed URLs expire,
      so they are derived again on every read.
    - tags is a Postgres TEXT[] (JSON on SQLite so the test suite can use an
      in-memory database).
    - created_at is immutable and drives the default newest-first ordering.
"""

import enum
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import JSON, DateTime, Index, String, Text, Uuid, text
from sqlalchemy.dialects.postgresql import ARRAY
from sqlalchemy.orm import Mapped, mapped_column

from medsnap.database import Base

DEFAULT_CATEGORY = "General"

TITLE_MAX_LENGTH = 200
CATEGORY_MAX_LENGTH = 50
NOTES_MAX_LENGTH = 2000
TAG_MAX_LENGTH = 50


class FileKind(str, enum.Enum):
    PDF = "pdf"
    IMAGE = "image"
    WORD = "word"


class Guideline(Base):
    """
    One uploaded clinical document.

    Lifecycle:
        created (blob written, then row inserted)
        → edited any number of times (metadata, optionally a new blob)
        → deleted (blob removal attempted, row removed regardless)
    """

    __tablename__ = "guidelines"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    user_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="Owning profile (profiles.user_id)",
    )

    title: Mapped[str] = mapped_column(String(TITLE_MAX_LENGTH), nullable=False)

    category: Mapped[str] = mapped_column(
        String(CATEGORY_MAX_LENGTH),
        nullable=False,
        default=DEFAULT_CATEGORY,
        server_default=text("'General'"),
    )

    tags: Mapped[List[str]] = mapped_column(
        ARRAY(Text).with_variant(JSON(), "sqlite"),
        nullable=False,
        default=list,
    )

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    source_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    file_path: Mapped[str] = mapped_column(
        String(512),
        nullable=False,
        comment="Blob path inside the storage bucket (not a URL)",
    )

    file_type: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        comment="pdf, image or word",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )

    # The dashboard query: WHERE user_id = :uid ORDER BY created_at DESC
    __table_args__ = (
        Index("idx_guidelines_user_created", "user_id", created_at.desc()),
    )

    def __repr__(self) -> str:
        return f"<Guideline(id={self.id}, title='{self.title}', category='{self.category}')>"
