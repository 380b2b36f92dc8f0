"""Two-phase credit ledger: reserve a hold, then commit or cancel it exactly once."""

from __future__ import annotations

import asyncio
import logging
import math
import time
import uuid
import weakref
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Literal

import msgspec

from inputmax.ai.errors import AuthorizationMismatchError, InsufficientCreditsError, LedgerCorruptionError, RateLimitedError
from inputmax.storage.kv import KeyValueStore

logger = logging.getLogger(__name__)

HoldState = Literal["pending", "committed", "cancelled"]

MIN_HOLD_TTL_SECONDS = 300
MAX_HOLD_TTL_SECONDS = 86400
DEFAULT_HOLD_TTL_SECONDS = 1800
COMMITTED_HOLD_TTL_SECONDS = 3600
CANCELLED_HOLD_TTL_SECONDS = 900
RATE_WINDOW_SECONDS = 60


class HoldRecord(msgspec.Struct, rename="camel"):
  """Stored form of a hold under hold:{jobId}."""

  device_id: str
  amount: int
  state: HoldState
  expires_at: float
  resolved_at: float | None = None
  expired: bool = False


class PendingHold(msgspec.Struct, rename="camel"):
  amount: int
  expires_at: float


_HOLD_DECODER = msgspec.json.Decoder(HoldRecord)
_INDEX_DECODER = msgspec.json.Decoder(dict[str, PendingHold])


@dataclass(frozen=True)
class LedgerSnapshot:
  """Balance and outstanding reservations for one device."""

  balance: int
  reserved: int

  @property
  def available(self) -> int:
    return max(0, self.balance - self.reserved)


@dataclass(frozen=True)
class HoldResult:
  job_id: str
  amount: int
  balance: int
  reserved: int
  expires_at: float
  already: bool = False


@dataclass(frozen=True)
class ResolveResult:
  job_id: str
  balance: int
  reserved: int
  already: bool = False


def clamp_ttl(ttl_seconds: int | None) -> int:
  """Clamp a requested hold lifetime to the supported window."""
  if ttl_seconds is None:
    return DEFAULT_HOLD_TTL_SECONDS
  return max(MIN_HOLD_TTL_SECONDS, min(MAX_HOLD_TTL_SECONDS, int(ttl_seconds)))


def normalize_amount(amount: float | int | None) -> int:
  """Holds always reserve at least one whole credit."""
  if amount is None:
    return 1
  return max(1, math.floor(amount))


def _balance_key(device_id: str) -> str:
  return f"device:{device_id}"


def _reserved_key(device_id: str) -> str:
  return f"device:{device_id}:reserved"


def _index_key(device_id: str) -> str:
  return f"device:{device_id}:holds"


def _hold_key(job_id: str) -> str:
  return f"hold:{job_id}"


def _rate_key(device_id: str, window: int) -> str:
  return f"rate:jobs:{device_id}:{window}"


class CreditLedger:
  """
  Per-device serialized ledger over a KeyValueStore.

  Every mutation for a device runs under that device's asyncio.Lock, so the
  read-modify-write of balance and reserved never interleaves inside one
  process. Pending holds are tracked in a per-device index; each operation
  first releases the reservation of holds whose lifetime has passed.
  """

  def __init__(
    self,
    store: KeyValueStore,
    *,
    clock: Callable[[], float] = time.time,
    default_ttl_seconds: int = DEFAULT_HOLD_TTL_SECONDS,
    starts_per_minute: int = 10,
  ) -> None:
    self._store = store
    self._clock = clock
    self._default_ttl_seconds = clamp_ttl(default_ttl_seconds)
    self._starts_per_minute = starts_per_minute
    # Locks live only while some call for the device holds or awaits them.
    self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

  @asynccontextmanager
  async def _device(self, device_id: str) -> AsyncIterator[None]:
    if not device_id:
      raise ValueError("device_id is required")
    lock = self._locks.get(device_id)
    if lock is None:
      lock = asyncio.Lock()
      self._locks[device_id] = lock
    async with lock:
      await self._release_expired(device_id)
      yield

  async def _read_int(self, key: str) -> int:
    raw = await self._store.get(key)
    if raw is None:
      return 0
    try:
      return int(raw)
    except ValueError:
      logger.warning("Non-integer ledger value at %s; treating as 0", key)
      return 0

  async def _write_int(self, key: str, value: int) -> None:
    await self._store.put(key, str(max(0, value)))

  async def _snapshot(self, device_id: str) -> LedgerSnapshot:
    balance = await self._read_int(_balance_key(device_id))
    reserved = await self._read_int(_reserved_key(device_id))
    return LedgerSnapshot(balance=balance, reserved=reserved)

  async def _read_index(self, device_id: str) -> dict[str, PendingHold]:
    raw = await self._store.get(_index_key(device_id))
    if raw is None:
      return {}
    try:
      return _INDEX_DECODER.decode(raw)
    except msgspec.DecodeError:
      logger.error("Corrupt hold index for device=%s; resetting", device_id, exc_info=True)
      return {}

  async def _write_index(self, device_id: str, index: dict[str, PendingHold]) -> None:
    if not index:
      await self._store.delete(_index_key(device_id))
      return
    await self._store.put(_index_key(device_id), msgspec.json.encode(index).decode("utf-8"))

  async def _read_hold(self, job_id: str) -> HoldRecord | None:
    raw = await self._store.get(_hold_key(job_id))
    if raw is None:
      return None
    try:
      return _HOLD_DECODER.decode(raw)
    except msgspec.DecodeError as exc:
      raise LedgerCorruptionError(f"bad hold record for job {job_id}") from exc

  async def _write_hold(self, job_id: str, hold: HoldRecord, ttl_seconds: int) -> None:
    await self._store.put(_hold_key(job_id), msgspec.json.encode(hold).decode("utf-8"), ttl_seconds=ttl_seconds)

  async def _release_expired(self, device_id: str) -> None:
    """Return reservations of pending holds past their lifetime."""
    index = await self._read_index(device_id)
    now = self._clock()
    expired = {job_id: entry for job_id, entry in index.items() if entry.expires_at <= now}
    if not expired:
      return

    reserved = await self._read_int(_reserved_key(device_id))
    for job_id, entry in expired.items():
      reserved -= entry.amount
      hold = HoldRecord(device_id=device_id, amount=entry.amount, state="cancelled", expires_at=entry.expires_at, resolved_at=now, expired=True)
      await self._write_hold(job_id, hold, CANCELLED_HOLD_TTL_SECONDS)
      del index[job_id]
      logger.info("Released expired hold job_id=%s device=%s amount=%d", job_id, device_id, entry.amount)

    await self._write_int(_reserved_key(device_id), reserved)
    await self._write_index(device_id, index)

  async def _check_rate(self, device_id: str) -> None:
    if self._starts_per_minute <= 0:
      return
    now = self._clock()
    window = int(now // RATE_WINDOW_SECONDS)
    key = _rate_key(device_id, window)
    count = await self._read_int(key)
    if count >= self._starts_per_minute:
      retry_after = int((window + 1) * RATE_WINDOW_SECONDS - now) + 1
      raise RateLimitedError(retry_after)
    await self._store.put(key, str(count + 1), ttl_seconds=RATE_WINDOW_SECONDS * 2)

  async def balance(self, device_id: str) -> LedgerSnapshot:
    """Return the current balance and reservations for a device."""
    async with self._device(device_id):
      return await self._snapshot(device_id)

  async def start_job(self, device_id: str, amount: float | int | None = 1, *, job_id: str | None = None, ttl_seconds: int | None = None) -> HoldResult:
    """Reserve credits for a job; raise InsufficientCreditsError when available < amount."""
    amount = normalize_amount(amount)
    ttl = clamp_ttl(ttl_seconds) if ttl_seconds is not None else self._default_ttl_seconds
    job_id = job_id or str(uuid.uuid4())

    async with self._device(device_id):
      existing = await self._read_hold(job_id)
      if existing is not None:
        if existing.device_id != device_id:
          raise AuthorizationMismatchError(f"job {job_id} belongs to another device")
        if existing.state == "pending":
          # Re-sending start for a live hold must not reserve twice.
          snapshot = await self._snapshot(device_id)
          return HoldResult(job_id=job_id, amount=existing.amount, balance=snapshot.balance, reserved=snapshot.reserved, expires_at=existing.expires_at, already=True)
        raise LedgerCorruptionError(f"job {job_id} is already {existing.state}")

      await self._check_rate(device_id)
      snapshot = await self._snapshot(device_id)
      if snapshot.balance - snapshot.reserved < amount:
        raise InsufficientCreditsError(balance=snapshot.balance, reserved=snapshot.reserved, requested=amount)

      expires_at = self._clock() + ttl
      reserved = snapshot.reserved + amount
      await self._write_int(_reserved_key(device_id), reserved)
      # Keep the record past its lifetime so a late commit can see it expired.
      await self._write_hold(job_id, HoldRecord(device_id=device_id, amount=amount, state="pending", expires_at=expires_at), ttl + CANCELLED_HOLD_TTL_SECONDS)
      index = await self._read_index(device_id)
      index[job_id] = PendingHold(amount=amount, expires_at=expires_at)
      await self._write_index(device_id, index)

    logger.info("Hold opened job_id=%s device=%s amount=%d ttl=%d", job_id, device_id, amount, ttl)
    return HoldResult(job_id=job_id, amount=amount, balance=snapshot.balance, reserved=reserved, expires_at=expires_at)

  async def commit_job(self, device_id: str, job_id: str) -> ResolveResult:
    """Charge a pending hold. Missing or already-resolved holds are a no-op."""
    return await self._resolve(device_id, job_id, "committed")

  async def cancel_job(self, device_id: str, job_id: str) -> ResolveResult:
    """Release a pending hold without charging. Missing or resolved holds are a no-op."""
    return await self._resolve(device_id, job_id, "cancelled")

  async def _resolve(self, device_id: str, job_id: str, target: Literal["committed", "cancelled"]) -> ResolveResult:
    if not job_id:
      raise ValueError("job_id is required")

    async with self._device(device_id):
      hold = await self._read_hold(job_id)
      if hold is not None and hold.device_id != device_id:
        raise AuthorizationMismatchError(f"job {job_id} belongs to another device")
      if hold is None or hold.state != "pending":
        snapshot = await self._snapshot(device_id)
        return ResolveResult(job_id=job_id, balance=snapshot.balance, reserved=snapshot.reserved, already=True)

      snapshot = await self._snapshot(device_id)
      balance = snapshot.balance
      if target == "committed":
        balance = max(0, balance - hold.amount)
        await self._write_int(_balance_key(device_id), balance)
      reserved = max(0, snapshot.reserved - hold.amount)
      await self._write_int(_reserved_key(device_id), reserved)

      resolved = msgspec.structs.replace(hold, state=target, resolved_at=self._clock())
      ttl = COMMITTED_HOLD_TTL_SECONDS if target == "committed" else CANCELLED_HOLD_TTL_SECONDS
      await self._write_hold(job_id, resolved, ttl)
      index = await self._read_index(device_id)
      index.pop(job_id, None)
      await self._write_index(device_id, index)

    logger.info("Hold %s job_id=%s device=%s amount=%d", target, job_id, device_id, hold.amount)
    return ResolveResult(job_id=job_id, balance=balance, reserved=reserved)

  async def grant(self, device_id: str, amount: int) -> int:
    """Add credits to a device and return the new balance."""
    if amount <= 0:
      raise ValueError("amount must be positive")
    async with self._device(device_id):
      balance = await self._read_int(_balance_key(device_id)) + amount
      await self._write_int(_balance_key(device_id), balance)
    logger.info("Granted %d credits to device=%s balance=%d", amount, device_id, balance)
    return balance

  async def grant_once(self, device_id: str, marker_key: str, amount: int, *, marker_value: str | None = None) -> tuple[bool, int]:
    """
    Grant credits unless marker_key was already recorded. Returns (granted, balance).

    A zero amount only records the marker, so unknown products are still
    consumed exactly once.
    """
    if amount < 0:
      raise ValueError("amount must not be negative")
    async with self._device(device_id):
      if await self._store.get(marker_key) is not None:
        return False, await self._read_int(_balance_key(device_id))
      balance = await self._read_int(_balance_key(device_id)) + amount
      if amount:
        await self._write_int(_balance_key(device_id), balance)
      await self._store.put(marker_key, marker_value or device_id)
    logger.info("Granted %d credits to device=%s marker=%s balance=%d", amount, device_id, marker_key, balance)
    return True, balance
