"""Wiring of edge-routed models and agents from settings."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from inputmax.ai.agents import AlignedTranslator, NarrativeGenerator, SpeechSynthesizer, StorySummarizer
from inputmax.ai.backoff import RemoteCallPolicy
from inputmax.ai.orchestrator import GenerationPipeline
from inputmax.ai.providers.proxy import ProxyChatModel, ProxyClient, ProxySpeechModel
from inputmax.config import Settings
from inputmax.jobs.queue import SeriesOrchestrator
from inputmax.storage.lessons_repo import FileLessonStore
from inputmax.storage.series_repo import SeriesStore


def text_policy(settings: Settings) -> RemoteCallPolicy:
  return RemoteCallPolicy(timeout=settings.text_timeout_seconds, attempts=settings.retry_attempts, initial_delay=settings.retry_initial_delay, factor=settings.retry_factor)


def audio_policy(settings: Settings) -> RemoteCallPolicy:
  return RemoteCallPolicy(timeout=settings.audio_timeout_seconds, attempts=settings.retry_attempts, initial_delay=settings.retry_initial_delay, factor=settings.retry_factor)


@dataclass
class GenerationStack:
  client: ProxyClient
  pipeline: GenerationPipeline
  series: SeriesOrchestrator

  async def aclose(self) -> None:
    await self.client.aclose()


def build_generation_stack(settings: Settings, *, device_id: str, lessons_dir: Path | str | None = None, client: ProxyClient | None = None) -> GenerationStack:
  """Build the pipeline and series orchestrator that talk to the edge service as device_id."""
  client = client or ProxyClient(
    settings.proxy_base_url,
    device_id,
    timeout=max(settings.text_timeout_seconds, settings.audio_timeout_seconds) + 10,
    hold_policy=text_policy(settings),
  )
  chat = ProxyChatModel(client, settings.chat_model, text_policy(settings))
  speech = ProxySpeechModel(client, audio_policy(settings), voice=settings.tts_voice)
  root = Path(lessons_dir or settings.lessons_dir)

  pipeline = GenerationPipeline(
    ledger=client,
    narrator=NarrativeGenerator(model=chat),
    translator=AlignedTranslator(model=chat),
    speech=SpeechSynthesizer(model=speech),
    lessons=FileLessonStore(root),
    credits_per_lesson=settings.credits_per_lesson,
    hold_ttl_seconds=settings.hold_ttl_seconds,
  )
  series = SeriesOrchestrator(pipeline, StorySummarizer(model=chat), SeriesStore(root))
  return GenerationStack(client=client, pipeline=pipeline, series=series)
