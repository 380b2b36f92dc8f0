from __future__ import annotations

import asyncio

import pytest

from inputmax.ai.agents import StorySummarizer
from inputmax.ai.errors import InsufficientCreditsError, TransientNetworkError
from inputmax.ai.orchestrator import GenerationPipeline
from inputmax.ai.pipeline.contracts import GenerationRequest
from inputmax.ai.providers.base import AIModel, SimpleModelResponse
from inputmax.jobs.progress import ProgressChannel
from inputmax.jobs.queue import CANCELLED_MESSAGE, SeriesOrchestrator, text_from_segments
from inputmax.services.ledger import CreditLedger
from inputmax.storage.lessons_repo import SegmentRecord
from inputmax.storage.series_repo import SeriesStore
from tests.fakes import FakeSpeechModel, LedgerHoldBackend, QueueModel, ScriptedModel


def _writer_prompts(model: ScriptedModel) -> list[str]:
  return [prompt for prompt, system in model.calls if system and system.startswith("You are a world-class writer")]


@pytest.mark.anyio
async def test_continuation_series_runs_parts_in_order_with_summaries(
  series_orchestrator: SeriesOrchestrator, ledger: CreditLedger, hold_backend: LedgerHoldBackend, lesson_request: GenerationRequest, story_model: ScriptedModel
) -> None:
  await ledger.grant(hold_backend.device_id, 2)
  items = series_orchestrator.plan_series(lesson_request, total_parts=2, folder_name="Feira")
  series_orchestrator.enqueue(items)
  await series_orchestrator.wait_idle()

  assert [item.status for item in items] == ["completed", "completed"]
  assert items[0].lesson_id != items[1].lesson_id
  writer_prompts = _writer_prompts(story_model)
  assert "Maria sold fruit at the market." not in writer_prompts[0]
  assert "Maria sold fruit at the market." in writer_prompts[1]

  series = series_orchestrator.series.require(items[0].series_id)
  assert series.lesson_ids == [items[0].lesson_id, items[1].lesson_id]
  assert series.completed_parts == 2
  folders = series_orchestrator.series.folders()
  assert [(folder.name, folder.lesson_ids) for folder in folders] == [("Feira", series.lesson_ids)]
  assert (await ledger.balance(hold_backend.device_id)).balance == 0


@pytest.mark.anyio
async def test_failed_item_pauses_queue_until_retry(series_orchestrator: SeriesOrchestrator, ledger: CreditLedger, hold_backend: LedgerHoldBackend, lesson_request: GenerationRequest) -> None:
  await ledger.grant(hold_backend.device_id, 1)
  items = series_orchestrator.plan_series(lesson_request, total_parts=3, folder_name="Feira")
  series_orchestrator.enqueue(items)
  await series_orchestrator.wait_idle()

  assert [item.status for item in items] == ["completed", "failed", "pending"]
  assert "Insufficient credits" in (items[1].error or "")
  assert series_orchestrator.retry(items[0].id) is False

  await ledger.grant(hold_backend.device_id, 2)
  assert series_orchestrator.retry(items[1].id) is True
  await series_orchestrator.wait_idle()
  assert [item.status for item in items] == ["completed", "completed", "completed"]
  assert items[1].error is None

  series_orchestrator.clear_completed()
  assert series_orchestrator.items == []


@pytest.mark.anyio
async def test_cancelling_a_pending_item_skips_it(series_orchestrator: SeriesOrchestrator, ledger: CreditLedger, hold_backend: LedgerHoldBackend, lesson_request: GenerationRequest) -> None:
  await ledger.grant(hold_backend.device_id, 2)
  items = series_orchestrator.plan_series(lesson_request, total_parts=2, folder_name="Feira")
  series_orchestrator.enqueue(items)
  series_orchestrator.cancel(items[1].id)
  await series_orchestrator.wait_idle()

  assert items[0].status == "completed"
  assert (items[1].status, items[1].error) == ("cancelled", CANCELLED_MESSAGE)
  assert series_orchestrator.retry(items[1].id) is False
  assert (await ledger.balance(hold_backend.device_id)).balance == 1


@pytest.mark.anyio
async def test_cancelling_a_generating_item_releases_its_hold(
  series_orchestrator: SeriesOrchestrator, pipeline: GenerationPipeline, ledger: CreditLedger, hold_backend: LedgerHoldBackend, lesson_request: GenerationRequest
) -> None:
  await ledger.grant(hold_backend.device_id, 1)
  started = asyncio.Event()

  class BlockingSpeech(FakeSpeechModel):
    async def synthesize(self, text: str, *, language: str, speed: str = "regular") -> bytes:
      started.set()
      await asyncio.Event().wait()
      return b""

  pipeline.speech._model = BlockingSpeech()
  items = series_orchestrator.plan_series(lesson_request, total_parts=1, folder_name="Feira")
  series_orchestrator.enqueue(items)
  await started.wait()
  assert items[0].status == "generating"

  series_orchestrator.cancel_series(items[0].series_id)
  await series_orchestrator.wait_idle()

  assert items[0].status == "cancelled"
  snapshot = await ledger.balance(hold_backend.device_id)
  assert (snapshot.balance, snapshot.reserved) == (1, 0)
  assert pipeline.lessons.manifest() == []


@pytest.mark.anyio
async def test_summary_failure_does_not_fail_the_part(pipeline: GenerationPipeline, ledger: CreditLedger, hold_backend: LedgerHoldBackend, lesson_request: GenerationRequest, tmp_path) -> None:
  await ledger.grant(hold_backend.device_id, 2)
  orchestrator = SeriesOrchestrator(pipeline, StorySummarizer(model=QueueModel([])), SeriesStore(tmp_path / "series"))
  items = orchestrator.plan_series(lesson_request, total_parts=2, folder_name="Feira")
  orchestrator.enqueue(items)
  await orchestrator.wait_idle()

  assert [item.status for item in items] == ["completed", "completed"]
  assert orchestrator.series.require(items[0].series_id).last_summary is None


@pytest.mark.anyio
async def test_iterative_series_uses_one_hold_and_three_slices(
  series_orchestrator: SeriesOrchestrator, ledger: CreditLedger, hold_backend: LedgerHoldBackend, story_model: ScriptedModel
) -> None:
  await ledger.grant(hold_backend.device_id, 3)
  request = GenerationRequest(mode="random", topic_pool=["a feira"], gen_language="Portuguese (Brazil)", trans_language="English", length_words=300)

  results = await series_orchestrator.generate_iterative_series(request, part_count=3, folder_name="Feira")

  assert len(results) == 3
  assert [result.title for result in results] == ["O Mercado (Part 1)", "O Mercado (Part 2)", "O Mercado (Part 3)"]
  assert all(result.segment_count > 0 for result in results)
  assert [event for event, _ in hold_backend.events] == ["start", "commit"]
  snapshot = await ledger.balance(hold_backend.device_id)
  assert (snapshot.balance, snapshot.reserved) == (0, 0)

  writer_systems = [system for _, system in story_model.calls if system and system.startswith("You are a world-class writer")]
  assert len(writer_systems) == 1
  assert "Aim for ~300 words" in writer_systems[0]

  folders = series_orchestrator.series.folders()
  assert folders[0].lesson_ids == [result.lesson_id for result in results]
  series = series_orchestrator.series.require(folders[0].series_id)
  assert series.mode == "iterative"
  assert series.total_parts == 3


@pytest.mark.anyio
async def test_iterative_series_needs_credits_for_every_part(series_orchestrator: SeriesOrchestrator, ledger: CreditLedger, hold_backend: LedgerHoldBackend, story_model: ScriptedModel) -> None:
  await ledger.grant(hold_backend.device_id, 2)
  request = GenerationRequest(mode="random", gen_language="Portuguese (Brazil)", trans_language="English")
  with pytest.raises(InsufficientCreditsError):
    await series_orchestrator.generate_iterative_series(request, part_count=3, folder_name="Feira")
  assert story_model.calls == []


def test_text_from_segments_groups_by_paragraph() -> None:
  segments = [
    SegmentRecord(id=2, primary_text="Dois.", secondary_text="Two.", primary_audio_ref="a", secondary_audio_ref="b", paragraph_index=0),
    SegmentRecord(id=1, primary_text="Um.", secondary_text="One.", primary_audio_ref="a", secondary_audio_ref="b", paragraph_index=0),
    SegmentRecord(id=3, primary_text="Três.", secondary_text="Three.", primary_audio_ref="a", secondary_audio_ref="b", paragraph_index=1),
  ]
  assert text_from_segments(segments) == "Um. Dois.\n\nTrês."


@pytest.mark.anyio
async def test_failed_summary_is_not_carried_to_later_parts(
  pipeline: GenerationPipeline, ledger: CreditLedger, hold_backend: LedgerHoldBackend, lesson_request: GenerationRequest, story_model: ScriptedModel, tmp_path
) -> None:
  await ledger.grant(hold_backend.device_id, 3)
  summaries = iter(["Resumo da parte um."])

  def summarize(prompt: str, system: str | None) -> str:
    summary = next(summaries, None)
    if summary is None:
      raise RuntimeError("summary model down")
    return summary

  orchestrator = SeriesOrchestrator(pipeline, StorySummarizer(model=ScriptedModel(summarize)), SeriesStore(tmp_path / "series"))
  items = orchestrator.plan_series(lesson_request, total_parts=3, folder_name="Feira")
  orchestrator.enqueue(items)
  await orchestrator.wait_idle()

  assert [item.status for item in items] == ["completed", "completed", "completed"]
  writer_prompts = _writer_prompts(story_model)
  assert "Resumo da parte um." in writer_prompts[1]
  assert "Resumo da parte um." not in writer_prompts[2]
  assert orchestrator.series.require(items[0].series_id).last_summary is None


@pytest.mark.anyio
async def test_cancel_during_summary_keeps_the_saved_part_completed(
  pipeline: GenerationPipeline, ledger: CreditLedger, hold_backend: LedgerHoldBackend, lesson_request: GenerationRequest, tmp_path
) -> None:
  await ledger.grant(hold_backend.device_id, 2)
  summarizing = asyncio.Event()
  release = asyncio.Event()

  class BlockingSummaryModel(AIModel):
    name = "blocking-summary"

    async def generate(self, prompt: str, *, system: str | None = None) -> SimpleModelResponse:
      summarizing.set()
      await release.wait()
      return SimpleModelResponse(content="Resumo.")

  orchestrator = SeriesOrchestrator(pipeline, StorySummarizer(model=BlockingSummaryModel()), SeriesStore(tmp_path / "series"))
  items = orchestrator.plan_series(lesson_request, total_parts=2, folder_name="Feira")
  orchestrator.enqueue(items)
  await summarizing.wait()

  orchestrator.cancel(items[0].id)
  release.set()
  await orchestrator.wait_idle()

  assert items[0].status == "completed"
  assert items[0].error is None
  assert items[0].lesson_id in [entry.id for entry in pipeline.lessons.manifest()]
  assert items[1].status == "completed"
  assert (await ledger.balance(hold_backend.device_id)).balance == 0


@pytest.mark.anyio
async def test_iterative_series_failure_registers_no_slice(
  series_orchestrator: SeriesOrchestrator, pipeline: GenerationPipeline, ledger: CreditLedger, hold_backend: LedgerHoldBackend
) -> None:
  await ledger.grant(hold_backend.device_id, 3)

  class FinalSliceFailingSpeech(FakeSpeechModel):
    async def synthesize(self, text: str, *, language: str, speed: str = "regular") -> bytes:
      if "descansa" in text:
        raise TransientNetworkError("tts unavailable")
      return await super().synthesize(text, language=language, speed=speed)

  pipeline.speech._model = FinalSliceFailingSpeech()
  request = GenerationRequest(mode="random", topic_pool=["a feira"], gen_language="Portuguese (Brazil)", trans_language="English", length_words=300)
  progress = ProgressChannel()

  with pytest.raises(TransientNetworkError):
    await series_orchestrator.generate_iterative_series(request, part_count=3, folder_name="Feira", progress=progress)

  assert [event for event, _ in hold_backend.events] == ["start", "cancel"]
  assert pipeline.lessons.manifest() == []
  assert series_orchestrator.series.folders() == []
  assert progress.state.outcome == "failed"
  snapshot = await ledger.balance(hold_backend.device_id)
  assert (snapshot.balance, snapshot.reserved) == (3, 0)


@pytest.mark.anyio
async def test_iterative_series_with_empty_prompt_fails_its_progress(series_orchestrator: SeriesOrchestrator, hold_backend: LedgerHoldBackend) -> None:
  request = GenerationRequest(mode="prompt", user_prompt=" ", gen_language="German", trans_language="English")
  progress = ProgressChannel()
  with pytest.raises(ValueError):
    await series_orchestrator.generate_iterative_series(request, part_count=2, folder_name="Leer", progress=progress)
  assert progress.state.finished
  assert progress.state.outcome == "failed"
  assert hold_backend.events == []
