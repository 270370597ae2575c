#!/usr/bin/env python3
"""
Shared SQLAlchemy base and mixin for the account models.

- UUID primary key (String(36)) generated in Python
- created_at / updated_at timestamps set in Python, in UTC

Notes:
- Timestamps are assigned in __init__ rather than by server defaults so an
  instance carries its version timestamp before it is flushed (the in-memory
  store never flushes) and so every explicit update can stamp updated_at.
- SQLite drops tzinfo on the way back; as_utc() puts it back so comparisons
  and version tags behave the same across backends.
"""

from __future__ import annotations

from datetime import datetime, timezone
import uuid

from sqlalchemy import Column, String, DateTime
from sqlalchemy.orm import declarative_base

# Declarative base for all models
Base = declarative_base()


def _uuid_str() -> str:
    """Return a canonical UUIDv4 string (36 chars, with hyphens)."""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Return `value` as an aware UTC datetime; naive values are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class BaseModel:
    """
    Base mixin for all persistent models: id, created_at, updated_at.
    """

    id = Column(String(36), primary_key=True, default=_uuid_str, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    def __init__(self, *args, **kwargs):
        """
        Allow attribute initialization via kwargs without requiring a session.
        Missing id and timestamps are filled in here.
        """
        for key, value in kwargs.items():
            if key != "__class__":
                setattr(self, key, value)
        if getattr(self, "id", None) is None:
            self.id = _uuid_str()
        if getattr(self, "created_at", None) is None:
            self.created_at = utcnow()
        if getattr(self, "updated_at", None) is None:
            self.updated_at = self.created_at

    def __str__(self) -> str:
        """Human-friendly representation including id."""
        return f"[{self.__class__.__name__}] ({self.id})"

    def column_values(self) -> dict:
        """Plain dict of mapped column values (no SQLAlchemy state)."""
        return {col.key: getattr(self, col.key) for col in self.__table__.columns}

    def clone(self):
        """Detached copy carrying the same column values."""
        values = self.column_values()
        if isinstance(values.get("roles"), list):
            values["roles"] = list(values["roles"])
        return self.__class__(**values)
