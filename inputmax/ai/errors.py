"""Error taxonomy shared by the ledger, the edge client and the generation pipeline."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass

import httpx


class InsufficientCreditsError(RuntimeError):
  """Raised when a hold cannot be admitted because available credits are too low."""

  def __init__(self, balance: int, reserved: int = 0, requested: int | None = None) -> None:
    self.balance = balance
    self.reserved = reserved
    self.requested = requested
    super().__init__(f"Insufficient credits: balance={balance} reserved={reserved} requested={requested}")


class AuthorizationMismatchError(RuntimeError):
  """Raised when a device tries to resolve a hold it does not own."""


class RateLimitedError(RuntimeError):
  """Raised when a device exceeds its job start allowance."""

  def __init__(self, retry_after: int) -> None:
    self.retry_after = retry_after
    super().__init__(f"Rate limited; retry after {retry_after}s")


class LedgerCorruptionError(RuntimeError):
  """Raised when a stored hold record cannot be decoded."""


class TransientNetworkError(RuntimeError):
  """Timeouts, connection failures, 429s and 5xx responses. Safe to retry."""


class OperationTimeoutError(TransientNetworkError):
  """Raised when a remote operation exceeds its time budget."""


class UpstreamRejectedError(RuntimeError):
  """A remote service refused the request with a non-retryable status."""

  def __init__(self, status_code: int, body: str = "") -> None:
    self.status_code = status_code
    self.body = body
    super().__init__(f"Upstream rejected request status={status_code} body={body[:200]}")


class GenerationCancelledError(Exception):
  """Raised cooperatively when a job is cancelled by its owner."""


@dataclass(frozen=True)
class AlignmentFailure:
  """Warning record for a paragraph whose sentence counts could not be reconciled."""

  paragraph_index: int
  source_sentences: int
  translated_sentences: int


_TRANSIENT_HINTS: tuple[str, ...] = (
  "rate limit",
  "timeout",
  "timed out",
  "connection reset",
  "service unavailable",
  "bad gateway",
  "temporarily unavailable",
)


def _match_hint(message: str, hints: Iterable[str]) -> bool:
  """Return True when any hint appears in the message."""
  return any(hint in message for hint in hints)


def is_retryable_status(status_code: int) -> bool:
  """Return True for HTTP statuses that signal a transient condition."""
  return status_code in {408, 429} or status_code >= 500


def is_transient(exc: BaseException) -> bool:
  """Return True when an exception should be retried with backoff."""
  # Cancellation is never transient, even when it surfaces as a timeout.
  if isinstance(exc, asyncio.CancelledError | GenerationCancelledError):
    return False
  if isinstance(exc, TransientNetworkError | RateLimitedError):
    return True
  if isinstance(exc, InsufficientCreditsError | AuthorizationMismatchError | UpstreamRejectedError):
    return False
  if isinstance(exc, httpx.TimeoutException | httpx.TransportError | TimeoutError):
    return True
  if isinstance(exc, httpx.HTTPStatusError):
    return is_retryable_status(exc.response.status_code)
  # SDK errors without a typed status fall back to message hints.
  status_code = getattr(exc, "status_code", None)
  if isinstance(status_code, int):
    return is_retryable_status(status_code)
  return _match_hint(str(exc).lower(), _TRANSIENT_HINTS)
