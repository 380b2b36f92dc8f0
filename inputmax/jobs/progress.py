"""Progress reporting and cooperative cancellation for generation jobs."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Literal

from inputmax.ai.errors import GenerationCancelledError

JobOutcome = Literal["running", "succeeded", "failed", "cancelled"]
MAX_TRACKED_LOGS = 100


@dataclass(frozen=True)
class ProgressEvent:
  stage: str
  message: str
  outcome: JobOutcome = "running"
  lesson_id: str | None = None


@dataclass
class ProgressState:
  """Latest known state of a job; readable at any time."""

  stage: str = "queued"
  message: str = ""
  outcome: JobOutcome = "running"
  lesson_id: str | None = None
  error: str | None = None
  logs: list[str] = field(default_factory=list)

  @property
  def finished(self) -> bool:
    return self.outcome != "running"


class ProgressChannel:
  """
  Single-consumer progress stream plus an observable state snapshot.

  Producers call report() and one of the terminal methods; a consumer either
  iterates the channel or polls `state`. Iteration ends after the terminal
  event.
  """

  def __init__(self) -> None:
    self.state = ProgressState()
    self._queue: asyncio.Queue[ProgressEvent] = asyncio.Queue()

  def report(self, stage: str, message: str) -> None:
    if self.state.finished:
      return
    self.state.stage = stage
    self.state.message = message
    self.state.logs.append(message)
    if len(self.state.logs) > MAX_TRACKED_LOGS:
      self.state.logs = self.state.logs[-MAX_TRACKED_LOGS:]
    self._queue.put_nowait(ProgressEvent(stage=stage, message=message))

  def succeed(self, lesson_id: str, message: str = "Lesson ready") -> None:
    self._finish(ProgressEvent(stage="done", message=message, outcome="succeeded", lesson_id=lesson_id))

  def fail(self, message: str) -> None:
    self._finish(ProgressEvent(stage="error", message=message, outcome="failed"))

  def cancel(self, message: str = "Generation cancelled") -> None:
    self._finish(ProgressEvent(stage="cancelled", message=message, outcome="cancelled"))

  def _finish(self, event: ProgressEvent) -> None:
    # Only the first terminal event counts.
    if self.state.finished:
      return
    self.state.stage = event.stage
    self.state.message = event.message
    self.state.outcome = event.outcome
    self.state.lesson_id = event.lesson_id
    if event.outcome == "failed":
      self.state.error = event.message
    self._queue.put_nowait(event)

  async def __aiter__(self) -> AsyncIterator[ProgressEvent]:
    while True:
      event = await self._queue.get()
      yield event
      if event.outcome != "running":
        return


class CancellationToken:
  """Cooperative cancellation flag checked between pipeline stages."""

  def __init__(self) -> None:
    self._event = asyncio.Event()

  def cancel(self) -> None:
    self._event.set()

  @property
  def cancelled(self) -> bool:
    return self._event.is_set()

  def raise_if_cancelled(self, stage: str = "") -> None:
    if self._event.is_set():
      where = f" before {stage}" if stage else ""
      raise GenerationCancelledError(f"Generation cancelled{where}")
