"""Identifier utilities."""

from __future__ import annotations

import uuid


def generate_job_id() -> str:
  """Return a new job identifier."""
  return str(uuid.uuid4())


def generate_series_id() -> str:
  """Return a new series identifier."""
  return str(uuid.uuid4())


def generate_queue_item_id() -> str:
  """Return a new queue item identifier."""
  return str(uuid.uuid4())
