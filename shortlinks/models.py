"""SQLAlchemy ORM models for the short-link engine.

This module defines the durable record shapes other tooling relies on: the link
table and the append-only click event log.

Data Model Layout
=================
::
    links table
    ├─ id (SERIAL PRIMARY KEY)
    ├─ short_code (VARCHAR(32) UNIQUE, INDEXED)
    ├─ long_url (TEXT NOT NULL, Fernet ciphertext)
    ├─ destination_digest (VARCHAR(64), INDEXED, HMAC-SHA256 of the plaintext)
    ├─ user_id (VARCHAR(64), INDEXED)
    ├─ custom_alias (BOOLEAN)
    ├─ password_hash (TEXT NULL, bcrypt)
    ├─ is_active (BOOLEAN)
    ├─ created_at (TIMESTAMPTZ)
    └─ expires_at (TIMESTAMPTZ NULL, INDEXED)

    click_events table
    ├─ id (SERIAL PRIMARY KEY)
    ├─ short_code (VARCHAR(32), INDEXED, no foreign key)
    ├─ clicked_at (TIMESTAMPTZ, INDEXED)
    ├─ ip_address, user_agent
    ├─ device_type, browser, os
    ├─ referrer (NULL)
    └─ country, city (NULL)

How to Use
===========
**Step 1 — Import**::
    from shortlinks.models import ClickEvent, Link

**Step 2 — Persist through the store, never a raw session**::
    inserted = await store.insert_link(Link(short_code="abc123", ...))

Key Behaviours
===============
- short_code is unique; the constraint backs the allocator's conditional insert.
- Click events reference links by code only, so they may outlive the link.
- All timestamps are written in UTC by the engine, not by the database server.

Classes:
    Link:  A short code mapped to an encrypted destination.
    ClickEvent:  One recorded visit.
"""

import datetime

from sqlalchemy import Boolean, DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from shortlinks.database import Base

__all__ = ["Link", "ClickEvent", "as_utc", "utcnow"]


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def as_utc(value: datetime.datetime | None) -> datetime.datetime | None:
    """Attach UTC to naive timestamps read back from backends that drop the offset (SQLite)."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=datetime.timezone.utc)


class Link(Base):
    __tablename__ = "links"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    short_code: Mapped[str] = mapped_column(String(32), unique=True, index=True, nullable=False)
    long_url: Mapped[str] = mapped_column(Text, nullable=False)
    destination_digest: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    custom_alias: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    password_hash: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    expires_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), index=True, nullable=True)

    def __repr__(self) -> str:
        return f"<Link(id={self.id}, short_code='{self.short_code}', user_id='{self.user_id}')>"


class ClickEvent(Base):
    __tablename__ = "click_events"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    short_code: Mapped[str] = mapped_column(String(32), index=True, nullable=False)
    clicked_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    device_type: Mapped[str | None] = mapped_column(String(16), nullable=True)
    browser: Mapped[str | None] = mapped_column(String(64), nullable=True)
    os: Mapped[str | None] = mapped_column(String(64), nullable=True)
    referrer: Mapped[str | None] = mapped_column(Text, nullable=True)
    country: Mapped[str | None] = mapped_column(String(64), nullable=True)
    city: Mapped[str | None] = mapped_column(String(128), nullable=True)

    __table_args__ = (Index("ix_click_events_code_clicked_at", "short_code", "clicked_at"),)

    def __repr__(self) -> str:
        return f"<ClickEvent(id={self.id}, short_code='{self.short_code}', clicked_at={self.clicked_at})>"
