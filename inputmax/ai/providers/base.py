"""Base interfaces for chat and speech models."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Protocol

from inputmax.ai.pipeline.contracts import SpeechSpeed


class ModelResponse(Protocol):
  """Response contract for model outputs."""

  content: str
  usage: dict[str, int] | None


@dataclass
class SimpleModelResponse:
  """Minimal model response structure."""

  content: str
  usage: dict[str, int] | None = None


class AIModel(ABC):
  """Abstract base class for text models."""

  name: str

  @abstractmethod
  async def generate(self, prompt: str, *, system: str | None = None) -> ModelResponse:
    """Generate a response for the given prompt."""


class SpeechModel(ABC):
  """Abstract base class for text-to-speech models."""

  name: str

  @abstractmethod
  async def synthesize(self, text: str, *, language: str, speed: SpeechSpeed = "regular") -> bytes:
    """Return encoded audio for text."""
