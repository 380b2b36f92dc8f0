"""Key-value storage backing the credit ledger."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Protocol

from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from inputmax.schema.kv import KvEntry

Clock = Callable[[], float]


class KeyValueStore(Protocol):
  """Repository contract for string values with optional expiry."""

  async def get(self, key: str) -> str | None:
    """Return the value for key, or None when missing or expired."""

  async def put(self, key: str, value: str, *, ttl_seconds: int | None = None) -> None:
    """Store value under key, replacing any previous value."""

  async def delete(self, key: str) -> None:
    """Remove key if present."""


@dataclass
class _Entry:
  value: str
  expires_at: float | None


class InMemoryKeyValueStore:
  """Process-local store used by tests and single-node development."""

  def __init__(self, clock: Clock = time.time) -> None:
    self._clock = clock
    self._entries: dict[str, _Entry] = {}

  async def get(self, key: str) -> str | None:
    entry = self._entries.get(key)
    if entry is None:
      return None
    if entry.expires_at is not None and entry.expires_at <= self._clock():
      del self._entries[key]
      return None
    return entry.value

  async def put(self, key: str, value: str, *, ttl_seconds: int | None = None) -> None:
    expires_at = self._clock() + ttl_seconds if ttl_seconds else None
    self._entries[key] = _Entry(value=value, expires_at=expires_at)

  async def delete(self, key: str) -> None:
    self._entries.pop(key, None)


class SqlKeyValueStore:
  """Persist entries to the kv_entries table using SQLAlchemy."""

  def __init__(self, session_factory: async_sessionmaker[AsyncSession], clock: Clock = time.time) -> None:
    self._session_factory = session_factory
    self._clock = clock

  def _now(self) -> datetime:
    return datetime.fromtimestamp(self._clock(), UTC)

  async def get(self, key: str) -> str | None:
    async with self._session_factory() as session:
      stmt = select(KvEntry.value).where(KvEntry.key == key, or_(KvEntry.expires_at.is_(None), KvEntry.expires_at > self._now()))
      result = await session.execute(stmt)
      return result.scalar_one_or_none()

  async def put(self, key: str, value: str, *, ttl_seconds: int | None = None) -> None:
    expires_at = self._now() + timedelta(seconds=ttl_seconds) if ttl_seconds else None
    async with self._session_factory() as session:
      # merge() issues an upsert-by-primary-key that works on any backend.
      await session.merge(KvEntry(key=key, value=value, expires_at=expires_at))
      await session.commit()

  async def delete(self, key: str) -> None:
    async with self._session_factory() as session:
      await session.execute(delete(KvEntry).where(KvEntry.key == key))
      await session.commit()

  async def purge_expired(self) -> int:
    """Delete expired rows and return how many were removed."""
    async with self._session_factory() as session:
      result = await session.execute(delete(KvEntry).where(KvEntry.expires_at.is_not(None), KvEntry.expires_at <= self._now()))
      await session.commit()
      return int(result.rowcount or 0)
