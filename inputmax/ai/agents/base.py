"""Base class for AI agents."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from inputmax.ai.providers.base import AIModel

UsageSink = Callable[[dict[str, Any]], None] | None


class BaseAgent:
  """Base agent with shared dependencies."""

  name: str

  def __init__(self, *, model: AIModel, use: UsageSink = None) -> None:
    self._model = model
    self._usage_sink = use

  async def _complete(self, prompt: str, *, system: str | None = None, purpose: str, call_index: str = "1/1") -> str:
    """Run one model call and record its token usage."""
    response = await self._model.generate(prompt, system=system)
    self._record_usage(agent=self.name, purpose=purpose, call_index=call_index, usage=response.usage)
    return response.content.strip()

  def _record_usage(self, *, agent: str, purpose: str, call_index: str, usage: dict[str, int] | None) -> None:
    if not usage or not self._usage_sink:
      return
    payload = {
      "model": getattr(self._model, "name", "unknown"),
      "agent": agent,
      "purpose": purpose,
      "call_index": call_index,
      **usage,
    }
    self._usage_sink(payload)
