"""Turn a raw topic or user prompt into a structured writing brief."""

from __future__ import annotations

import re
from dataclasses import dataclass

from inputmax.ai.agents.prompts import cefr_guidance
from inputmax.ai.pipeline.contracts import CEFRLevel

MAX_MUST_COVER = 8

_WORDS_PER_PARAGRAPH: dict[str, int] = {"A1": 50, "A2": 60, "B1": 70, "B2": 80, "C1": 90, "C2": 100}

# Checked in order; the first matching keyword decides the purpose.
_PURPOSE_HINTS: tuple[tuple[str, tuple[str, ...]], ...] = (
  ("summarize", ("summarize", "summary", "resumo", "zusammenfass")),
  ("persuade", ("persuade", "argue", "opinion", "convince")),
  ("report", ("report", "news", "notícia", "bericht")),
  ("explain", ("explain", "how to", "how does", "why ", "guide")),
  ("narrate", ("story", "tale", "narrat", "fable", "adventure", "história", "geschichte")),
  ("explore", ("explore", "reflect", "essay")),
)
_SENTENCE_BREAK = re.compile(r"(?<=[.!?;])\s+|\n+")


@dataclass(frozen=True)
class ElevationInput:
  material: str
  target_language: str
  word_count: int
  level: CEFRLevel
  is_topic: bool = False
  previous_summary: str | None = None
  part_number: int | None = None


def infer_purpose(material: str, *, is_topic: bool) -> str:
  """Pick the writing purpose from keywords; bare topics become narratives."""
  lowered = material.lower()
  for purpose, hints in _PURPOSE_HINTS:
    if any(hint in lowered for hint in hints):
      return purpose
  return "narrate" if is_topic else "inform"


def paragraph_plan(word_count: int, level: CEFRLevel, *, continuing: bool) -> list[str]:
  """One line per planned paragraph."""
  count = max(2, round(word_count / _WORDS_PER_PARAGRAPH[level]))
  per_paragraph = max(1, word_count // count)
  opening = "Pick up directly where the previous part ended" if continuing else "Open with the setting and the central idea"
  plan = [f"Paragraph 1 (~{per_paragraph} words): {opening}."]
  plan.extend(f"Paragraph {index} (~{per_paragraph} words): Develop one new step or event." for index in range(2, count))
  plan.append(f"Paragraph {count} (~{per_paragraph} words): Close the piece with a clear final thought.")
  return plan


def must_cover_points(material: str) -> list[str]:
  points = [chunk.strip(" -•*\t") for chunk in _SENTENCE_BREAK.split(material.strip())]
  return [point for point in points if point][:MAX_MUST_COVER]


def elevate(data: ElevationInput) -> str:
  """
  Build the writing brief.

  Deterministic: the same input always yields the same brief, and no model
  is consulted.
  """
  material = data.material.strip()
  if not material:
    raise ValueError("material must not be empty")

  continuing = bool(data.previous_summary)
  purpose = infer_purpose(material, is_topic=data.is_topic)
  lines = [
    f"Purpose: {purpose}.",
    f"Language: {data.target_language}. Length: about {data.word_count} words (±15%). CEFR level: {data.level}.",
    f"Audience and voice: adult learners of {data.target_language}; a warm, clear voice that suits the purpose.",
  ]
  if data.is_topic:
    lines.append(f"Topic: {material}")
  else:
    lines.append("Keep the user's intent, named entities, facts and requested form exactly as given.")

  if continuing:
    part = f"part {data.part_number} of " if data.part_number else ""
    lines += ["", f"Continuity: this is {part}an ongoing series. Story so far:", data.previous_summary.strip(), "Continue from this point without retelling it; keep characters, setting and tone consistent."]

  lines += ["", "Paragraph plan (keep sentences short and complete):", *paragraph_plan(data.word_count, data.level, continuing=continuing)]
  lines += ["", "Must cover:", *(f"- {point}" for point in must_cover_points(material))]
  lines += ["", "Level guidance the writer must obey:", cefr_guidance(data.level, data.target_language)]
  return "\n".join(lines)
