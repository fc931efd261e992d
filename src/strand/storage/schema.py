"""SQLAlchemy ORM schema for Strand.

Defines the database tables: sessions and _strand_meta. A session is
stored as a single JSON document so that a patch of the aggregate is one
row write.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Index, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all Strand ORM models."""

    pass


class SessionRow(Base):
    """One session aggregate (live timeline, threads, forks, compaction)."""

    __tablename__ = "sessions"

    session_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    document_json: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (Index("ix_sessions_created", "created_at"),)


class StrandMetaRow(Base):
    """Key/value metadata (schema version)."""

    __tablename__ = "_strand_meta"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
