"""Client-side credit hold scoping for generation jobs."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Protocol

from inputmax.utils.ids import generate_job_id

logger = logging.getLogger(__name__)


class HoldBackend(Protocol):
  async def start_job(self, amount: int, *, job_id: str | None = None, ttl_seconds: int | None = None) -> str: ...

  async def commit_job(self, job_id: str) -> int | None: ...

  async def cancel_job(self, job_id: str) -> int | None: ...


@asynccontextmanager
async def job_hold(backend: HoldBackend, amount: int, *, ttl_seconds: int | None = None) -> AsyncIterator[str]:
  """
  Reserve credits for the body of the block and settle them afterwards.

  The hold is committed only when the block finishes normally. Any exception,
  cancellation included, releases it and propagates unchanged; a failure to
  release is logged and never replaces the original error.
  """
  job_id = await backend.start_job(amount, job_id=generate_job_id(), ttl_seconds=ttl_seconds)
  logger.info("Opened hold job_id=%s amount=%d", job_id, amount)
  try:
    yield job_id
  except BaseException:
    try:
      await backend.cancel_job(job_id)
      logger.info("Released hold job_id=%s", job_id)
    except Exception:
      logger.error("Failed to release hold job_id=%s", job_id, exc_info=True)
    raise

  await backend.commit_job(job_id)
  logger.info("Committed hold job_id=%s amount=%d", job_id, amount)
