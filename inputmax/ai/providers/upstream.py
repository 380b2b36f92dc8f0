"""Upstream model vendor used by the edge service's /chat and /tts endpoints."""

from __future__ import annotations

import logging
from typing import Any

import openai
from openai import AsyncOpenAI

from inputmax.ai.errors import TransientNetworkError, UpstreamRejectedError
from inputmax.ai.pipeline.contracts import ChatCompletionRequest, SpeechRequest

logger = logging.getLogger(__name__)


def speech_instruction(language: str | None, speed: str) -> str:
  """Delivery instruction for the speech model."""
  where = f" in {language}" if language else ""
  if speed == "slow":
    return f"Speak naturally and slowly{where}."
  return f"Speak naturally{where}."


class UpstreamModels:
  """Thin wrapper over AsyncOpenAI that maps SDK errors onto the error taxonomy."""

  def __init__(self, api_key: str | None, *, tts_model: str, tts_voice: str, client: AsyncOpenAI | None = None) -> None:
    if client is None and not api_key:
      raise ValueError("OPENAI_API_KEY environment variable is required")
    self._client = client or AsyncOpenAI(api_key=api_key)
    self._tts_model = tts_model
    self._tts_voice = tts_voice

  async def aclose(self) -> None:
    await self._client.close()

  async def chat(self, request: ChatCompletionRequest) -> dict[str, Any]:
    """Forward a chat-completions payload and return the vendor JSON."""
    payload = request.model_dump(mode="json", exclude_none=True)
    model = payload.pop("model")
    messages = payload.pop("messages")
    try:
      # Unknown fields travel as extra_body so the passthrough stays transparent.
      completion = await self._client.chat.completions.create(model=model, messages=messages, extra_body=payload or None)
    except openai.APIStatusError as exc:
      raise UpstreamRejectedError(exc.status_code, exc.response.text) from exc
    except openai.APIConnectionError as exc:
      raise TransientNetworkError(f"Upstream chat unreachable: {exc}") from exc
    return completion.model_dump(mode="json")

  async def speech(self, request: SpeechRequest) -> bytes:
    """Synthesize speech for one segment."""
    instruction = speech_instruction(request.language, request.speed)
    try:
      response = await self._client.audio.speech.create(
        model=self._tts_model,
        voice=request.voice or self._tts_voice,
        input=request.text,
        response_format=request.format,
        instructions=instruction,
      )
    except openai.APIStatusError as exc:
      raise UpstreamRejectedError(exc.status_code, exc.response.text) from exc
    except openai.APIConnectionError as exc:
      raise TransientNetworkError(f"Upstream speech unreachable: {exc}") from exc
    logger.debug("Synthesized %d chars language=%s speed=%s", len(request.text), request.language, request.speed)
    return response.content
