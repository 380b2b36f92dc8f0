"""Series generation: a sequential lesson queue plus the whole-story strategy."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime

from inputmax.ai.agents import StorySummarizer
from inputmax.ai.errors import GenerationCancelledError
from inputmax.ai.orchestrator import GenerationPipeline, GenerationResult, build_brief, resolve_material, slice_translation
from inputmax.ai.pipeline.contracts import GenerationRequest, LessonText, TranslationResult
from inputmax.ai.utils.segmentation import join_paragraphs, partition_bounds, raw_paragraphs, split_into_parts
from inputmax.jobs.models import QueueItem, SeriesStrategy
from inputmax.jobs.progress import CancellationToken, ProgressChannel
from inputmax.storage.lessons_repo import SegmentRecord
from inputmax.storage.series_repo import SeriesMetadata, SeriesStore
from inputmax.utils.ids import generate_queue_item_id, generate_series_id

logger = logging.getLogger(__name__)

CANCELLED_MESSAGE = "Cancelled by user"


def text_from_segments(segments: list[SegmentRecord]) -> str:
  """Rebuild the primary text: segments grouped by paragraph, in id order."""
  paragraphs: dict[int, list[SegmentRecord]] = {}
  for segment in segments:
    paragraphs.setdefault(segment.paragraph_index, []).append(segment)
  return join_paragraphs([" ".join(s.primary_text for s in sorted(group, key=lambda s: s.id)) for _, group in sorted(paragraphs.items())])


class SeriesOrchestrator:
  """
  Run multi-part series on top of GenerationPipeline.

  Queued items are generated strictly one at a time in enqueue order. Each
  item moves pending -> generating -> completed | failed | cancelled; retry()
  moves a failed item back to pending. A failure stops the queue until the
  next retry() or enqueue(), so later parts never run without their
  predecessor's summary.
  """

  def __init__(
    self,
    pipeline: GenerationPipeline,
    summarizer: StorySummarizer,
    series: SeriesStore,
    *,
    clock: Callable[[], datetime] = lambda: datetime.now(UTC),
  ) -> None:
    self.pipeline = pipeline
    self.summarizer = summarizer
    self.series = series
    self.items: list[QueueItem] = []
    self.progress: dict[str, ProgressChannel] = {}
    self._clock = clock
    self._tokens: dict[str, CancellationToken] = {}
    self._tasks: dict[str, asyncio.Task[GenerationResult]] = {}
    self._runner: asyncio.Task[None] | None = None

  # Planning

  def plan_series(self, request: GenerationRequest, *, total_parts: int, folder_name: str, mode: SeriesStrategy = "continuation") -> list[QueueItem]:
    """Create the series record and one pending item per part."""
    if total_parts < 1:
      raise ValueError("total_parts must be at least 1")
    series_id = generate_series_id()
    self.series.save(
      SeriesMetadata(
        series_id=series_id,
        title=folder_name,
        total_parts=total_parts,
        mode=mode,
        created_at=self._clock().isoformat(),
        folder_id=series_id,
        outline=request.user_prompt or request.user_chosen_topic,
      )
    )
    items = []
    for part in range(1, total_parts + 1):
      part_request = request.model_copy(update={"series_id": series_id, "part_number": part, "total_parts": total_parts, "previous_summary": None})
      items.append(QueueItem(id=generate_queue_item_id(), request=part_request, series_id=series_id, part_number=part, total_parts=total_parts, folder_name=folder_name))
    return items

  # Queue operations

  def enqueue(self, items: list[QueueItem]) -> None:
    self.items.extend(items)
    self._ensure_running()

  def _ensure_running(self) -> None:
    if self._runner is None or self._runner.done():
      self._runner = asyncio.create_task(self.process())

  async def wait_idle(self) -> None:
    if self._runner is not None:
      await asyncio.shield(self._runner)

  def _next_pending(self) -> QueueItem | None:
    return next((item for item in self.items if item.status == "pending"), None)

  async def process(self) -> None:
    """Generate pending items one at a time; stop at the first failure."""
    while (item := self._next_pending()) is not None:
      await self._run_item(item)
      if item.status == "failed":
        logger.warning("Queue paused after failed item %s: %s", item.id, item.error)
        return

  async def _run_item(self, item: QueueItem) -> None:
    item.status = "generating"
    item.error = None
    token = CancellationToken()
    progress = ProgressChannel()
    self._tokens[item.id] = token
    self.progress[item.id] = progress
    task = asyncio.create_task(self._generate(item, progress, token))
    self._tasks[item.id] = task
    try:
      await asyncio.wait([task])
    except asyncio.CancelledError:
      task.cancel()
      raise
    finally:
      self._tasks.pop(item.id, None)
      self._tokens.pop(item.id, None)

    # The task outcome decides: a lesson that was saved and charged is completed even if a cancel raced it.
    exc = None if task.cancelled() else task.exception()
    if task.cancelled() or isinstance(exc, GenerationCancelledError):
      item.status = "cancelled"
      item.error = CANCELLED_MESSAGE
      return
    if exc is not None:
      logger.error("Queue item %s failed", item.id, exc_info=exc)
      item.status = "failed"
      item.error = str(exc) or type(exc).__name__
      return

    result = task.result()
    item.status = "completed"
    item.lesson_id = result.lesson_id
    if item.series_id:
      await self._record_part(item, result)

  async def _generate(self, item: QueueItem, progress: ProgressChannel, token: CancellationToken) -> GenerationResult:
    request = item.request
    if item.series_id and (item.part_number or 1) > 1:
      series = self.series.require(item.series_id)
      request = request.model_copy(update={"previous_summary": series.last_summary})
    return await self.pipeline.run(request, progress, token)

  async def _record_part(self, item: QueueItem, result: GenerationResult) -> None:
    assert item.series_id is not None
    series = self.series.record_part(item.series_id, result.lesson_id)
    folder_id = series.folder_id or series.series_id
    self.series.ensure_folder(folder_id, item.folder_name or series.title, series_id=series.series_id, created_at=self._clock().isoformat())
    self.series.add_to_folder(folder_id, result.lesson_id)

    if (item.part_number or 1) < (item.total_parts or 1):
      text = text_from_segments(self.pipeline.lessons.load_segments(result.lesson_id))
      # The lesson is already paid for; a missing summary only weakens continuity.
      summary: str | None = None
      try:
        summary = await self.summarizer.summarize(text)
      except Exception:
        logger.warning("Summary for series %s part %s failed; next part continues without it", item.series_id, item.part_number, exc_info=True)
      self.series.set_summary(item.series_id, summary)

  def cancel(self, item_id: str) -> None:
    """Cancel a pending item, or interrupt a generating one; its status follows the generation outcome."""
    item = self._find(item_id)
    if item is None or item.is_terminal:
      return
    if item.status == "generating":
      if token := self._tokens.get(item_id):
        token.cancel()
      if task := self._tasks.get(item_id):
        task.cancel()
      return
    item.status = "cancelled"
    item.error = CANCELLED_MESSAGE

  def cancel_series(self, series_id: str) -> None:
    for item in self.items_for_series(series_id):
      self.cancel(item.id)

  def cancel_all(self) -> None:
    for item in list(self.items):
      self.cancel(item.id)

  def retry(self, item_id: str) -> bool:
    """Move a failed item back to pending and resume the queue."""
    item = self._find(item_id)
    if item is None or item.status != "failed":
      return False
    item.status = "pending"
    item.error = None
    self._ensure_running()
    return True

  def clear_completed(self) -> None:
    self.items = [item for item in self.items if item.status != "completed"]

  def items_for_series(self, series_id: str) -> list[QueueItem]:
    return [item for item in self.items if item.series_id == series_id]

  def _find(self, item_id: str) -> QueueItem | None:
    return next((item for item in self.items if item.id == item_id), None)

  # Whole-story strategy

  async def generate_iterative_series(
    self,
    request: GenerationRequest,
    *,
    part_count: int,
    folder_name: str,
    progress: ProgressChannel | None = None,
    cancel_token: CancellationToken | None = None,
  ) -> list[GenerationResult]:
    """
    Write one story across part_count calls, then split it into lessons.

    A single hold covers every part and is committed once, after the last
    slice is saved. No slice is registered, and the series is not recorded,
    until every slice is written, so a failure leaves nothing visible. The
    story is translated once and cut on the same paragraph boundaries; when
    it has fewer paragraphs than parts, slices fall back to sentence groups
    and are translated one by one.
    """
    progress = progress or ProgressChannel()
    token = cancel_token or CancellationToken()
    try:
      material, is_topic = resolve_material(request)
    except ValueError as exc:
      progress.fail(str(exc))
      raise
    total_words = request.length_words * part_count
    series_id = generate_series_id()

    try:
      async with self.pipeline.hold(part_count):
        token.raise_if_cancelled("generate")
        progress.report("generate", f"Writing a {part_count}-part story…")
        brief = build_brief(request, material, is_topic=is_topic, word_count=total_words)
        story = await self.pipeline.narrator.generate_iteratively(
          brief, language=request.gen_language, level=request.language_level, total_words=total_words, part_count=part_count
        )
        slices, translations = await self._slice_story(story, request, part_count, progress, token)

        results: list[GenerationResult] = []
        for part, (body, translation) in enumerate(zip(slices, translations, strict=True), start=1):
          part_request = request.model_copy(update={"series_id": series_id, "part_number": part, "total_parts": part_count})
          lesson = LessonText(title=f"{story.title} (Part {part})", body=body)
          results.append(await self.pipeline.produce_lesson(lesson, part_request, progress=progress, cancel_token=token, translation=translation, register=False))

        token.raise_if_cancelled("register")
        self.series.save(
          SeriesMetadata(
            series_id=series_id,
            title=story.title,
            total_parts=part_count,
            mode="iterative",
            created_at=self._clock().isoformat(),
            folder_id=series_id,
            outline=material,
          )
        )
        self.series.ensure_folder(series_id, folder_name, series_id=series_id, created_at=self._clock().isoformat())
        for result in results:
          self.pipeline.register(result)
          self.series.record_part(series_id, result.lesson_id)
          self.series.add_to_folder(series_id, result.lesson_id)
    except (GenerationCancelledError, asyncio.CancelledError):
      progress.cancel()
      raise
    except Exception as exc:
      progress.fail(str(exc))
      raise

    progress.succeed(results[-1].lesson_id, f"Series ready: {part_count} parts")
    return results

  async def _slice_story(
    self, story: LessonText, request: GenerationRequest, part_count: int, progress: ProgressChannel, token: CancellationToken
  ) -> tuple[list[str], list[TranslationResult]]:
    paragraphs = raw_paragraphs(story.body)
    if len(paragraphs) >= part_count:
      bounds = partition_bounds(len(paragraphs), part_count)
      translation = await self.pipeline.translate(join_paragraphs(paragraphs), request, progress=progress, cancel_token=token)
      return [join_paragraphs(paragraphs[start:end]) for start, end in bounds], slice_translation(translation, bounds)

    slices = split_into_parts(story.body, part_count)
    translations = [await self.pipeline.translate(body, request, progress=progress, cancel_token=token) for body in slices]
    return slices, translations
