"""Narrative generator: one-shot lessons and whole stories grown part by part."""

from __future__ import annotations

import logging
import re

from inputmax.ai.agents.base import BaseAgent
from inputmax.ai.agents.prompts import render_extend_prompt, render_finalize_prompt, render_writer_system
from inputmax.ai.pipeline.contracts import CEFRLevel, LessonText
from inputmax.ai.utils.segmentation import CLOSERS, TERMINALS, join_paragraphs, raw_paragraphs, split_into_parts, split_sentences

logger = logging.getLogger(__name__)

__all__ = ["NarrativeGenerator", "dedupe_extension", "normalize_terminal_punctuation", "parse_lesson_text", "split_into_parts"]

UNTITLED = "Untitled"
_TITLE_PREFIX = re.compile(r"^(title|título|titel|titre|titolo)\s*[:：]\s*", re.IGNORECASE)
_TITLE_QUOTES = "\"'“”‘’«»「」『』*"
_ELLIPSIS = re.compile(r"\.{3,}|…")
_SPACE_BEFORE_PUNCT = re.compile(r"\s+([,.;:!?])")


def _clean_title(line: str) -> str:
  title = line.strip().lstrip("#").strip()
  title = _TITLE_PREFIX.sub("", title).strip().strip(_TITLE_QUOTES).strip()
  if title.isupper():
    title = title.title()
  return title


def normalize_terminal_punctuation(paragraph: str) -> str:
  """Move a trailing period outside a closing quote back inside it: `"Hi".` becomes `"Hi."`."""
  text = paragraph.rstrip()
  if len(text) >= 3 and text[-1] == "." and text[-2] in CLOSERS and text[-3] not in TERMINALS:
    return f"{text[:-2]}.{text[-2]}"
  return text


def parse_lesson_text(raw: str) -> LessonText:
  """
  Split model output into a title and body.

  The first non-empty line is the title; markdown hashes, surrounding quotes
  and a leading "Title:" label are removed, and all-caps titles are
  title-cased. Output with a single line has no title.
  """
  lines = raw.replace("\r\n", "\n").strip().split("\n")
  if len(lines) < 2:
    return LessonText(title=UNTITLED, body=join_paragraphs([normalize_terminal_punctuation(p) for p in raw_paragraphs(raw)]))

  title = _clean_title(lines[0]) or UNTITLED
  body = join_paragraphs([normalize_terminal_punctuation(p) for p in raw_paragraphs("\n".join(lines[1:]))])
  return LessonText(title=title, body=body)


def _sentence_key(sentence: str) -> str:
  return re.sub(r"\W+", " ", sentence.casefold()).strip()


def dedupe_extension(story: str, extension: str) -> str:
  """Drop sentences of extension that already occur in story and strip ellipses."""
  seen = {_sentence_key(sentence) for paragraph in raw_paragraphs(story) for sentence in split_sentences(paragraph)}
  kept_paragraphs: list[str] = []
  for paragraph in raw_paragraphs(extension):
    paragraph = _SPACE_BEFORE_PUNCT.sub(r"\1", _ELLIPSIS.sub(".", paragraph))
    kept: list[str] = []
    for sentence in split_sentences(paragraph):
      key = _sentence_key(sentence)
      if not key or key in seen:
        continue
      seen.add(key)
      kept.append(sentence)
    if kept:
      kept_paragraphs.append(normalize_terminal_punctuation(" ".join(kept)))
  return join_paragraphs(kept_paragraphs)


class NarrativeGenerator(BaseAgent):
  """Write lesson passages in the target language at a given CEFR level."""

  name = "Narrator"

  async def generate(self, brief: str, *, language: str, level: CEFRLevel, word_count: int) -> LessonText:
    system = render_writer_system(language=language, level=level, word_count=word_count)
    raw = await self._complete(brief, system=system, purpose="generate_lesson")
    lesson = parse_lesson_text(raw)
    if not lesson.body:
      raise ValueError("Model returned an empty lesson body")
    return lesson

  async def extend(self, story: str, *, language: str, level: CEFRLevel, word_count: int, call_index: str = "1/1") -> str:
    prompt = render_extend_prompt(story=story, language=language, level=level, word_count=word_count)
    return dedupe_extension(story, await self._complete(prompt, purpose="extend_story", call_index=call_index))

  async def finalize(self, story: str, *, language: str, level: CEFRLevel, word_count: int, call_index: str = "1/1") -> str:
    prompt = render_finalize_prompt(story=story, language=language, level=level, word_count=word_count)
    return dedupe_extension(story, await self._complete(prompt, purpose="finalize_story", call_index=call_index))

  async def generate_iteratively(self, brief: str, *, language: str, level: CEFRLevel, total_words: int, part_count: int) -> LessonText:
    """
    Grow one story over part_count model calls.

    The first call writes the opening, part_count - 2 calls extend it and a
    last call resolves it. Every call after the first receives the entire
    story so far. A single part is a plain generate().
    """
    if part_count < 1:
      raise ValueError("part_count must be at least 1")

    per_part = max(1, total_words // part_count)
    if part_count == 1:
      return await self.generate(brief, language=language, level=level, word_count=total_words)

    opening = await self.generate(brief, language=language, level=level, word_count=per_part)
    story = opening.body
    for index in range(2, part_count):
      addition = await self.extend(story, language=language, level=level, word_count=per_part, call_index=f"{index}/{part_count}")
      if not addition:
        logger.warning("Extension %d/%d added no new sentences", index, part_count)
        continue
      story = join_paragraphs([story, addition])

    ending = await self.finalize(story, language=language, level=level, word_count=per_part, call_index=f"{part_count}/{part_count}")
    if ending:
      story = join_paragraphs([story, ending])
    else:
      logger.warning("Finalization added no new sentences")
    logger.info("Iterative story complete parts=%d paragraphs=%d", part_count, len(raw_paragraphs(story)))
    return LessonText(title=opening.title, body=story)
