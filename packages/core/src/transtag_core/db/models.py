from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, DateTime, Enum, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.ext.hybrid import hybrid_property
from sqlalchemy.orm import Mapped, mapped_column

from transtag_core.db.base import Base
from transtag_core.db.enums import JobState, ScopeLevel

# Language code of the record holding a fragment's original text.
SOURCE_LANG = "source"


def utcnow() -> datetime:
    # Naive UTC so values compare identically after a round trip through any backend.
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Translation(Base):
    __tablename__ = "translation"

    translation_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    identifier: Mapped[str] = mapped_column(String(16), nullable=False)
    lang: Mapped[str] = mapped_column(String(32), nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    scope_level: Mapped[ScopeLevel] = mapped_column(
        Enum(ScopeLevel, native_enum=False), nullable=False, default=ScopeLevel.system
    )
    human: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    modified_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    reviewed_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("identifier", "lang", name="uq_translation_identifier_lang"),
        Index("ix_translation_lang", "lang"),
    )

    @hybrid_property
    def needs_review(self) -> bool:
        return self.modified_at > self.reviewed_at


class ScopeMapping(Base):
    __tablename__ = "scope_mapping"

    identifier: Mapped[str] = mapped_column(String(16), primary_key=True)
    scope_id: Mapped[int] = mapped_column(Integer, primary_key=True)

    __table_args__ = (Index("ix_scope_mapping_scope_id", "scope_id"),)


class ScanCursor(Base):
    __tablename__ = "scan_cursor"

    name: Mapped[str] = mapped_column(String(64), primary_key=True)
    current_table: Mapped[str | None] = mapped_column(String(128), nullable=True)
    last_id: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_key: Mapped[str | None] = mapped_column(String(64), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class SyncJob(Base):
    __tablename__ = "sync_job"

    job_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    target_langs: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    scope_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    # Identifiers still to be processed; shrinks as batches commit.
    identifiers: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    total_entries: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    processed_entries: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[JobState] = mapped_column(
        Enum(JobState, native_enum=False), nullable=False, default=JobState.queued
    )
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    parent_job_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    continued_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (Index("ix_sync_job_status", "status"),)
