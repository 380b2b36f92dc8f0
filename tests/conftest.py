"""Shared fixtures: scripted models, an in-process ledger and temporary lesson stores."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from inputmax.ai.agents import AlignedTranslator, NarrativeGenerator, SpeechSynthesizer, StorySummarizer
from inputmax.ai.orchestrator import GenerationPipeline
from inputmax.ai.pipeline.contracts import GenerationRequest
from inputmax.jobs.queue import SeriesOrchestrator
from inputmax.services.ledger import CreditLedger
from inputmax.storage.kv import InMemoryKeyValueStore
from inputmax.storage.lessons_repo import FileLessonStore
from inputmax.storage.series_repo import SeriesStore
from tests.fakes import FakeSpeechModel, LedgerHoldBackend, ManualClock, ScriptedModel, story_handler


@pytest.fixture
def anyio_backend() -> str:
  return "asyncio"


@pytest.fixture
def clock() -> ManualClock:
  return ManualClock()


@pytest.fixture
def ledger(clock: ManualClock) -> CreditLedger:
  return CreditLedger(InMemoryKeyValueStore(clock), clock=clock, starts_per_minute=0)


@pytest.fixture
def hold_backend(ledger: CreditLedger) -> LedgerHoldBackend:
  return LedgerHoldBackend(ledger)


@pytest.fixture
def story_model() -> ScriptedModel:
  return ScriptedModel(story_handler())


@pytest.fixture
def speech_model() -> FakeSpeechModel:
  return FakeSpeechModel()


@pytest.fixture
def lesson_store(tmp_path) -> FileLessonStore:
  return FileLessonStore(tmp_path / "lessons", clock=lambda: 1_700_000_000.0)


@pytest.fixture
def pipeline(hold_backend: LedgerHoldBackend, story_model: ScriptedModel, speech_model: FakeSpeechModel, lesson_store: FileLessonStore) -> GenerationPipeline:
  return GenerationPipeline(
    ledger=hold_backend,
    narrator=NarrativeGenerator(model=story_model),
    translator=AlignedTranslator(model=story_model),
    speech=SpeechSynthesizer(model=speech_model),
    lessons=lesson_store,
    clock=lambda: datetime(2026, 1, 1, tzinfo=UTC),
  )


@pytest.fixture
def series_orchestrator(pipeline: GenerationPipeline, story_model: ScriptedModel, tmp_path) -> SeriesOrchestrator:
  return SeriesOrchestrator(pipeline, StorySummarizer(model=story_model), SeriesStore(tmp_path / "lessons"), clock=lambda: datetime(2026, 1, 1, tzinfo=UTC))


@pytest.fixture
def lesson_request() -> GenerationRequest:
  return GenerationRequest(mode="prompt", user_prompt="A morning at the market", gen_language="Portuguese (Brazil)", trans_language="English", length_words=100, language_level="A2")
