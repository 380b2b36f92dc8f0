"""End-to-end lesson generation: brief, story, translation, segments, audio, files."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Callable, Sequence
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from datetime import UTC, datetime

from inputmax.ai.agents import AlignedTranslator, ElevationInput, NarrativeGenerator, SpeechSynthesizer, elevate
from inputmax.ai.errors import AlignmentFailure, GenerationCancelledError
from inputmax.ai.pipeline.contracts import DEFAULT_RANDOM_TOPIC, GenerationRequest, LessonText, TranslationResult
from inputmax.ai.utils.segmentation import Segmenter, join_paragraphs, raw_paragraphs
from inputmax.jobs.progress import CancellationToken, ProgressChannel
from inputmax.services.holds import HoldBackend, job_hold
from inputmax.storage.lessons_repo import FileLessonStore, LanguageCodes, LessonMeta, ManifestEntry, SegmentRecord
from inputmax.utils.languages import language_slug, resolve_languages, same_language

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GenerationResult:
  """A lesson that was persisted and registered."""

  lesson_id: str
  title: str
  segment_count: int
  misaligned_paragraphs: list[int] = field(default_factory=list)
  entry: ManifestEntry | None = field(default=None, repr=False, compare=False)


def choose_topic(request: GenerationRequest, *, rng: random.Random | None = None) -> str:
  """Chosen topic, else a random pick from the pool, else the default topic."""
  if request.user_chosen_topic and request.user_chosen_topic.strip():
    return request.user_chosen_topic.strip()
  pool = [topic.strip() for topic in request.topic_pool or [] if topic.strip()]
  if pool:
    return (rng or random).choice(pool)
  return DEFAULT_RANDOM_TOPIC


def resolve_material(request: GenerationRequest, *, rng: random.Random | None = None) -> tuple[str, bool]:
  """Return the raw material for the brief and whether it is a bare topic."""
  if request.mode == "random":
    return choose_topic(request, rng=rng), True
  prompt = request.user_prompt.strip()
  if not prompt:
    raise ValueError("Please enter a prompt (or switch to Random).")
  return prompt, False


def build_brief(request: GenerationRequest, material: str, *, is_topic: bool, word_count: int | None = None) -> str:
  return elevate(
    ElevationInput(
      material=material,
      target_language=request.gen_language,
      word_count=word_count or request.length_words,
      level=request.language_level,
      is_topic=is_topic,
      previous_summary=request.previous_summary,
      part_number=request.part_number,
    )
  )


class GenerationPipeline:
  """
  Produce one bilingual audio lesson per run.

  The whole run sits inside a single credit hold. The hold is committed only
  after the manifest entry is written; any error or cancellation releases it.
  """

  def __init__(
    self,
    *,
    ledger: HoldBackend,
    narrator: NarrativeGenerator,
    translator: AlignedTranslator,
    speech: SpeechSynthesizer,
    lessons: FileLessonStore,
    credits_per_lesson: int = 1,
    hold_ttl_seconds: int | None = None,
    clock: Callable[[], datetime] = lambda: datetime.now(UTC),
  ) -> None:
    self.ledger = ledger
    self.narrator = narrator
    self.translator = translator
    self.speech = speech
    self.lessons = lessons
    self.credits_per_lesson = credits_per_lesson
    self._hold_ttl_seconds = hold_ttl_seconds
    self._clock = clock

  def hold(self, lesson_count: int = 1) -> AbstractAsyncContextManager[str]:
    return job_hold(self.ledger, self.credits_per_lesson * lesson_count, ttl_seconds=self._hold_ttl_seconds)

  async def run(self, request: GenerationRequest, progress: ProgressChannel | None = None, cancel_token: CancellationToken | None = None) -> GenerationResult:
    progress = progress or ProgressChannel()
    token = cancel_token or CancellationToken()
    # Validated before the hold so a bad request never reserves credits.
    try:
      material, is_topic = resolve_material(request)
    except ValueError as exc:
      progress.fail(str(exc))
      raise

    try:
      async with self.hold():
        token.raise_if_cancelled("elevate")
        progress.report("elevate", "Elevating prompt…")
        brief = build_brief(request, material, is_topic=is_topic)

        token.raise_if_cancelled("generate")
        progress.report("generate", f"Generating {request.gen_language} text…")
        lesson = await self.narrator.generate(brief, language=request.gen_language, level=request.language_level, word_count=request.length_words)
        result = await self.produce_lesson(lesson, request, progress=progress, cancel_token=token)
    except (GenerationCancelledError, asyncio.CancelledError):
      progress.cancel()
      raise
    except Exception as exc:
      progress.fail(str(exc))
      raise

    progress.succeed(result.lesson_id)
    return result

  async def translate(self, text: str, request: GenerationRequest, *, progress: ProgressChannel, cancel_token: CancellationToken) -> TranslationResult:
    if same_language(request.gen_language, request.trans_language):
      return TranslationResult(text=text)
    cancel_token.raise_if_cancelled("translate")
    progress.report("translate", f"Translating to {request.trans_language}…")
    return await self.translator.translate(text, target_language=request.trans_language, source_language=request.gen_language)

  async def produce_lesson(
    self,
    lesson: LessonText,
    request: GenerationRequest,
    *,
    progress: ProgressChannel,
    cancel_token: CancellationToken,
    translation: TranslationResult | None = None,
    register: bool = True,
  ) -> GenerationResult:
    """
    Translate (unless given), segment, synthesize and persist one lesson; the caller owns the hold.

    With register=False the files are written but the manifest row is left to
    the caller, via register(result), once every lesson of the job is saved.
    """
    if translation is None:
      translation = await self.translate(lesson.body, request, progress=progress, cancel_token=cancel_token)

    cancel_token.raise_if_cancelled("segment")
    drafts = Segmenter(request.segmentation).build(lesson.body, translation.text)
    if not drafts:
      raise ValueError("Lesson produced no segments")
    unit = "sentence" if request.segmentation == "sentences" else "paragraph"
    progress.report("segment", f"Preparing audio… {len(drafts)} {unit} segments")

    lesson_id = self.lessons.allocate_lesson_id(lesson.title)
    primary_slug = language_slug(request.gen_language)
    secondary_slug = language_slug(request.trans_language)
    records: list[SegmentRecord] = []
    for draft in drafts:
      cancel_token.raise_if_cancelled("speech")
      progress.report("speech", f"TTS {draft.id}/{len(drafts)} {request.gen_language}…")
      primary_audio = await self.speech.synthesize(draft.primary_text, language=request.gen_language, speed=request.speech_speed)
      primary_ref = self.lessons.write_audio(lesson_id, f"{primary_slug}_{lesson_id}_{draft.id}.mp3", primary_audio)

      cancel_token.raise_if_cancelled("speech")
      progress.report("speech", f"TTS {draft.id}/{len(drafts)} {request.trans_language}…")
      secondary_audio = await self.speech.synthesize(draft.secondary_text, language=request.trans_language, speed=request.speech_speed)
      secondary_ref = self.lessons.write_audio(lesson_id, f"{secondary_slug}_{lesson_id}_{draft.id}.mp3", secondary_audio)

      records.append(
        SegmentRecord(
          id=draft.id,
          primary_text=draft.primary_text,
          secondary_text=draft.secondary_text,
          primary_audio_ref=primary_ref,
          secondary_audio_ref=secondary_ref,
          paragraph_index=draft.paragraph_index,
        )
      )

    cancel_token.raise_if_cancelled("persist")
    progress.report("persist", "Saving lesson…")
    misaligned = [failure.paragraph_index for failure in translation.misaligned_paragraphs]
    entry = self._persist(lesson_id, lesson.title, request, records, misaligned)
    logger.info("Lesson %s saved segments=%d misaligned=%s", lesson_id, len(records), misaligned)
    result = GenerationResult(lesson_id=lesson_id, title=lesson.title, segment_count=len(records), misaligned_paragraphs=misaligned, entry=entry)
    if register:
      self.register(result)
    return result

  def register(self, result: GenerationResult) -> None:
    """Make a saved lesson visible in the manifest."""
    if result.entry is None:
      raise ValueError(f"Lesson {result.lesson_id} has no manifest entry")
    self.lessons.register(result.entry)

  def _persist(self, lesson_id: str, title: str, request: GenerationRequest, records: Sequence[SegmentRecord], misaligned: list[int]) -> ManifestEntry:
    languages = resolve_languages(request.gen_language, request.trans_language)
    self.lessons.write_segments(lesson_id, list(records))
    self.lessons.write_meta(
      LessonMeta(
        lesson_id=lesson_id,
        title=title,
        primary_language=languages.target_name,
        secondary_language=languages.translation_name,
        primary_code=languages.target_code,
        secondary_code=languages.translation_code,
        primary_short=languages.target_short,
        secondary_short=languages.translation_short,
        segmentation=request.segmentation,
        speech_speed=request.speech_speed,
        language_level=request.language_level,
        created_at=self._clock().isoformat(),
        series_id=request.series_id,
        part_number=request.part_number,
        misaligned_paragraphs=misaligned,
      )
    )
    # Registered after these writes: readers only see lessons whose artifacts are complete.
    return ManifestEntry(
      id=lesson_id,
      title=title,
      folder_ref=lesson_id,
      primary_language=languages.target_name,
      secondary_language=languages.translation_name,
      language_codes=LanguageCodes(primary=languages.target_code, secondary=languages.translation_code),
    )


def slice_translation(translation: TranslationResult, bounds: Sequence[tuple[int, int]]) -> list[TranslationResult]:
  """Cut a whole-story translation into per-slice results along paragraph bounds."""
  paragraphs = raw_paragraphs(translation.text)
  slices: list[TranslationResult] = []
  for start, end in bounds:
    failures = [
      AlignmentFailure(paragraph_index=f.paragraph_index - start, source_sentences=f.source_sentences, translated_sentences=f.translated_sentences)
      for f in translation.misaligned_paragraphs
      if start <= f.paragraph_index < end
    ]
    slices.append(TranslationResult(text=join_paragraphs(paragraphs[start:end]), misaligned_paragraphs=failures))
  return slices
