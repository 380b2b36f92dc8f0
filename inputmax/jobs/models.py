"""Domain models for queued lesson generation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from inputmax.ai.pipeline.contracts import GenerationRequest

QueueStatus = Literal["pending", "generating", "completed", "failed", "cancelled"]
SeriesStrategy = Literal["continuation", "iterative"]

TERMINAL_STATUSES: frozenset[str] = frozenset({"completed", "failed", "cancelled"})


@dataclass
class QueueItem:
  """One lesson waiting for, or going through, generation."""

  id: str
  request: GenerationRequest
  series_id: str | None = None
  part_number: int | None = None
  total_parts: int | None = None
  folder_name: str | None = None
  status: QueueStatus = "pending"
  lesson_id: str | None = None
  error: str | None = None

  @property
  def is_terminal(self) -> bool:
    return self.status in TERMINAL_STATUSES
