from __future__ import annotations

import asyncio

import httpx
import pytest

from inputmax.ai import backoff
from inputmax.ai.backoff import RemoteCallPolicy, call_remote, retry_with_backoff, with_timeout
from inputmax.ai.errors import GenerationCancelledError, InsufficientCreditsError, OperationTimeoutError, TransientNetworkError, UpstreamRejectedError, is_transient


@pytest.fixture
def sleeps(monkeypatch) -> list[float]:
  recorded: list[float] = []

  async def _sleep(delay: float) -> None:
    recorded.append(delay)

  monkeypatch.setattr(backoff.asyncio, "sleep", _sleep)
  return recorded


@pytest.mark.anyio
async def test_retry_sleeps_exponentially_then_succeeds(sleeps: list[float]) -> None:
  attempts = {"count": 0}

  async def flaky() -> str:
    attempts["count"] += 1
    if attempts["count"] < 3:
      raise TransientNetworkError("connection reset")
    return "ok"

  assert await retry_with_backoff(flaky, attempts=3, initial_delay=1.0, factor=2.0) == "ok"
  assert sleeps == [1.0, 2.0]


@pytest.mark.anyio
async def test_retry_gives_up_after_last_attempt(sleeps: list[float]) -> None:
  async def always_down() -> None:
    raise TransientNetworkError("service unavailable")

  with pytest.raises(TransientNetworkError):
    await retry_with_backoff(always_down, attempts=2, initial_delay=0.5)
  assert sleeps == [0.5]


@pytest.mark.anyio
@pytest.mark.parametrize("error", [InsufficientCreditsError(balance=0), UpstreamRejectedError(400, "bad"), GenerationCancelledError("stop")])
async def test_non_transient_errors_are_not_retried(sleeps: list[float], error: Exception) -> None:
  calls = {"count": 0}

  async def fails() -> None:
    calls["count"] += 1
    raise error

  with pytest.raises(type(error)):
    await retry_with_backoff(fails, attempts=3)
  assert calls["count"] == 1
  assert sleeps == []


@pytest.mark.anyio
async def test_with_timeout_raises_operation_timeout() -> None:
  async def slow() -> None:
    await asyncio.Event().wait()

  with pytest.raises(OperationTimeoutError):
    await with_timeout(0.01, slow)


@pytest.mark.anyio
async def test_call_remote_retries_timeouts(sleeps: list[float]) -> None:
  calls = {"count": 0}

  async def sometimes_slow() -> str:
    calls["count"] += 1
    if calls["count"] == 1:
      await asyncio.Event().wait()
    return "done"

  policy = RemoteCallPolicy(timeout=0.01, attempts=2, initial_delay=0.1)
  assert await call_remote(sometimes_slow, policy) == "done"
  assert sleeps == [0.1]


def test_policy_delays() -> None:
  assert RemoteCallPolicy(timeout=1, attempts=4, initial_delay=1.0, factor=2.0).delays() == [1.0, 2.0, 4.0]
  assert RemoteCallPolicy(timeout=1, attempts=1).delays() == []


def test_transient_classification() -> None:
  request = httpx.Request("GET", "https://edge.test")
  assert is_transient(httpx.HTTPStatusError("boom", request=request, response=httpx.Response(503, request=request)))
  assert not is_transient(httpx.HTTPStatusError("nope", request=request, response=httpx.Response(404, request=request)))
  assert is_transient(httpx.ConnectTimeout("slow"))
  assert is_transient(RuntimeError("Rate limit exceeded"))
  assert not is_transient(ValueError("bad input"))
  assert not is_transient(asyncio.CancelledError())
