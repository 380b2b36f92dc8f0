"""Speech synthesis for lesson segments."""

from __future__ import annotations

import logging

from inputmax.ai.pipeline.contracts import SpeechSpeed
from inputmax.ai.providers.base import SpeechModel

logger = logging.getLogger(__name__)


class SpeechSynthesizer:
  """Produce audio for one segment of text."""

  name = "Speech"

  def __init__(self, *, model: SpeechModel) -> None:
    self._model = model

  async def synthesize(self, text: str, *, language: str, speed: SpeechSpeed = "regular") -> bytes:
    if not text.strip():
      raise ValueError("Cannot synthesize empty text")
    audio = await self._model.synthesize(text.strip(), language=language, speed=speed)
    logger.debug("Synthesized %d bytes language=%s speed=%s", len(audio), language, speed)
    return audio
