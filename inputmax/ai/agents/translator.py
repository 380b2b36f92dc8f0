"""Sentence-aligned translation, paragraph by paragraph."""

from __future__ import annotations

import asyncio
import logging

from inputmax.ai.agents.base import BaseAgent
from inputmax.ai.agents.prompts import TRANSLATOR_SYSTEM, render_repair_prompt, render_translate_prompt, render_verify_prompt
from inputmax.ai.errors import AlignmentFailure
from inputmax.ai.pipeline.contracts import TranslationResult
from inputmax.ai.utils.segmentation import join_paragraphs, raw_paragraphs, split_sentences
from inputmax.utils.languages import same_language

logger = logging.getLogger(__name__)


def _flatten(text: str) -> str:
  """Collapse a model reply to one paragraph."""
  return " ".join(raw_paragraphs(text))


class AlignedTranslator(BaseAgent):
  """
  Translate text so every paragraph keeps its sentence count.

  Paragraphs are translated concurrently. A paragraph whose draft has the
  wrong number of sentences gets one repair call; a verification call then
  replaces leftover source-language words, and its output is discarded if it
  changes the count. When the repair cannot fix the count, the draft is kept,
  still verified, and the paragraph is reported in the result.
  """

  name = "Translator"

  async def translate(self, text: str, *, target_language: str, source_language: str | None = None) -> TranslationResult:
    paragraphs = raw_paragraphs(text)
    if source_language and same_language(source_language, target_language):
      return TranslationResult(text=join_paragraphs(paragraphs))
    if not paragraphs:
      return TranslationResult(text="")

    total = len(paragraphs)
    outcomes = await asyncio.gather(
      *(
        self._translate_paragraph(index, paragraph, target_language=target_language, source_language=source_language, call_index=f"{index + 1}/{total}")
        for index, paragraph in enumerate(paragraphs)
      )
    )
    translated = [paragraph for paragraph, _ in outcomes]
    failures = [failure for _, failure in outcomes if failure is not None]
    for failure in failures:
      logger.warning(
        "Paragraph %d stayed misaligned: %d source vs %d translated sentences",
        failure.paragraph_index,
        failure.source_sentences,
        failure.translated_sentences,
      )
    return TranslationResult(text=join_paragraphs(translated), misaligned_paragraphs=failures)

  async def _translate_paragraph(
    self,
    index: int,
    paragraph: str,
    *,
    target_language: str,
    source_language: str | None,
    call_index: str,
  ) -> tuple[str, AlignmentFailure | None]:
    sentences = split_sentences(paragraph)
    expected = len(sentences)

    prompt = render_translate_prompt(paragraph, target_language=target_language, source_language=source_language, sentence_count=expected)
    draft = _flatten(await self._complete(prompt, system=TRANSLATOR_SYSTEM, purpose="translate", call_index=call_index))

    failure: AlignmentFailure | None = None
    if len(split_sentences(draft)) != expected:
      logger.info("Paragraph %d has %d sentences, expected %d; repairing", index, len(split_sentences(draft)), expected)
      repair = render_repair_prompt(sentences, draft, target_language=target_language)
      repaired = _flatten(await self._complete(repair, system=TRANSLATOR_SYSTEM, purpose="repair_alignment", call_index=call_index))
      if len(split_sentences(repaired)) == expected:
        draft = repaired
      else:
        failure = AlignmentFailure(paragraph_index=index, source_sentences=expected, translated_sentences=len(split_sentences(draft)))

    # Verification runs on misaligned drafts too; it must keep whatever count the draft has.
    draft_count = len(split_sentences(draft))
    verify = render_verify_prompt(draft, target_language=target_language, source_language=source_language)
    verified = _flatten(await self._complete(verify, system=TRANSLATOR_SYSTEM, purpose="verify_translation", call_index=call_index))
    if verified and len(split_sentences(verified)) == draft_count:
      return verified, failure
    logger.debug("Discarding verification of paragraph %d; sentence count changed", index)
    return draft, failure
