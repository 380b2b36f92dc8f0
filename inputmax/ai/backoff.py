"""Timeout and retry helpers wrapped around every remote call."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from inputmax.ai.errors import GenerationCancelledError, OperationTimeoutError, is_transient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RemoteCallPolicy:
  """Per-call timeout plus exponential backoff schedule."""

  timeout: float
  attempts: int = 3
  initial_delay: float = 1.0
  factor: float = 2.0

  def delays(self) -> list[float]:
    """Return the sleep before each retry (attempts - 1 entries)."""
    return [self.initial_delay * (self.factor**index) for index in range(max(self.attempts - 1, 0))]


async def with_timeout[T](seconds: float, op: Callable[[], Awaitable[T]]) -> T:
  """Run op under a deadline; expiry cancels it and raises OperationTimeoutError."""
  try:
    async with asyncio.timeout(seconds):
      return await op()
  except TimeoutError as exc:
    raise OperationTimeoutError(f"Operation timed out after {seconds}s") from exc


async def retry_with_backoff[T](
  op: Callable[[], Awaitable[T]],
  *,
  attempts: int = 3,
  initial_delay: float = 1.0,
  factor: float = 2.0,
  retry_on: Callable[[BaseException], bool] = is_transient,
) -> T:
  """
  Execute op up to `attempts` times.

  Sleeps initial_delay * factor**i between failures. Cancellation and errors
  the `retry_on` predicate rejects are re-raised immediately.
  """
  if attempts < 1:
    raise ValueError("attempts must be at least 1")

  delay = initial_delay
  for attempt in range(1, attempts + 1):
    try:
      return await op()
    except (asyncio.CancelledError, GenerationCancelledError):
      raise
    except Exception as exc:
      if attempt >= attempts or not retry_on(exc):
        raise
      logger.warning("Retry attempt %d/%d after %s: %s. Retrying in %.2fs", attempt, attempts, type(exc).__name__, exc, delay)
      await asyncio.sleep(delay)
      delay *= factor

  raise AssertionError("unreachable")


async def call_remote[T](op: Callable[[], Awaitable[T]], policy: RemoteCallPolicy) -> T:
  """Apply the per-attempt timeout and the retry schedule of policy to op."""
  return await retry_with_backoff(
    lambda: with_timeout(policy.timeout, op),
    attempts=policy.attempts,
    initial_delay=policy.initial_delay,
    factor=policy.factor,
  )
