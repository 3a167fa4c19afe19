"""SQLAlchemy ORM models for the shortly link service.

This module defines the database schema using SQLAlchemy declarative models
with indexing for the redirect hot path and the passive expiry sweep.

Data Model Layout
=================
::
    short_links table
    ├─ id (SERIAL PRIMARY KEY)
    ├─ short_code (VARCHAR(50) UNIQUE, INDEXED)
    ├─ original_url (TEXT NOT NULL)
    ├─ custom_slug (VARCHAR(50) UNIQUE, NULLABLE)
    ├─ owner_id (VARCHAR(64), INDEXED)
    ├─ is_active (BOOLEAN DEFAULT TRUE)
    ├─ expires_at (TIMESTAMPTZ, NULLABLE, INDEXED)
    ├─ click_count (INTEGER DEFAULT 0)
    ├─ created_at (TIMESTAMPTZ, DEFAULT NOW())
    └─ updated_at (TIMESTAMPTZ, DEFAULT NOW(), ON UPDATE)

    click_events table
    ├─ id (SERIAL PRIMARY KEY)
    ├─ link_id (FK short_links.id ON DELETE CASCADE, INDEXED)
    ├─ timestamp (TIMESTAMPTZ)
    ├─ ip / user_agent / referer (NULLABLE)
    ├─ device / browser / os (parsed at write time)
    └─ country / city (reserved, always NULL)

Class Relationship Diagram
=========================
::
    ShortLink 1 ──── * ClickEvent

Key Behaviours
===============
- A custom slug is stored in both short_code and custom_slug, so the
  short_code unique constraint alone guarantees the shared namespace.
- Uniqueness is enforced by the database, not only by the availability
  check, so concurrent creators cannot both win.
- click_count is only ever incremented in SQL (click_count + 1).

Classes:
    ShortLink:  A shortened URL owned by an account.
    ClickEvent:  One recorded redirect of a ShortLink.
"""

import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from shortly.database import Base

__all__ = ["ShortLink", "ClickEvent", "utcnow", "as_utc"]


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


def as_utc(value: datetime.datetime | None) -> datetime.datetime | None:
    # SQLite hands back naive datetimes; every stored timestamp is UTC.
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=datetime.UTC)


class ShortLink(Base):
    __tablename__ = "short_links"
    __table_args__ = (Index("ix_short_links_code_active", "short_code", "is_active"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    short_code: Mapped[str] = mapped_column(String(50), unique=True, index=True, nullable=False)
    original_url: Mapped[str] = mapped_column(Text, nullable=False)
    custom_slug: Mapped[str | None] = mapped_column(String(50), unique=True, nullable=True)
    owner_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    expires_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), index=True, nullable=True
    )
    click_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<ShortLink(id={self.id}, short_code='{self.short_code}', clicks={self.click_count})>"


class ClickEvent(Base):
    __tablename__ = "click_events"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    link_id: Mapped[int] = mapped_column(
        ForeignKey("short_links.id", ondelete="CASCADE"), index=True, nullable=False
    )
    timestamp: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    ip: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    referer: Mapped[str | None] = mapped_column(Text, nullable=True)
    device: Mapped[str | None] = mapped_column(String(32), nullable=True)
    browser: Mapped[str | None] = mapped_column(String(32), nullable=True)
    os: Mapped[str | None] = mapped_column(String(32), nullable=True)
    country: Mapped[str | None] = mapped_column(String(64), nullable=True)
    city: Mapped[str | None] = mapped_column(String(128), nullable=True)

    def __repr__(self) -> str:
        return f"<ClickEvent(id={self.id}, link_id={self.link_id}, device='{self.device}')>"
