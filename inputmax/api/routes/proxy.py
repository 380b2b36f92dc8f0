"""Chat and speech passthrough to the upstream model vendor."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, Response

from inputmax.ai.pipeline.contracts import ChatCompletionRequest, SpeechRequest
from inputmax.ai.providers.upstream import UpstreamModels
from inputmax.api.deps import get_upstream, require_device_id

router = APIRouter()
logger = logging.getLogger(__name__)

AUDIO_MEDIA_TYPES = {"mp3": "audio/mpeg", "wav": "audio/wav", "flac": "audio/flac"}


@router.post("/chat")
async def chat(
  payload: ChatCompletionRequest,
  device_id: str = Depends(require_device_id),  # noqa: B008
  upstream: UpstreamModels = Depends(get_upstream),  # noqa: B008
) -> dict[str, Any]:
  """Forward a chat-completions request; upstream errors keep their status code."""
  logger.info("Chat passthrough device=%s model=%s messages=%d", device_id, payload.model, len(payload.messages))
  return await upstream.chat(payload)


@router.post("/tts")
async def tts(
  payload: SpeechRequest,
  device_id: str = Depends(require_device_id),  # noqa: B008
  upstream: UpstreamModels = Depends(get_upstream),  # noqa: B008
) -> Response:
  logger.info("TTS device=%s chars=%d language=%s speed=%s", device_id, len(payload.text), payload.language, payload.speed)
  audio = await upstream.speech(payload)
  return Response(content=audio, media_type=AUDIO_MEDIA_TYPES[payload.format])
