"""Prompt text shared by agents."""

from __future__ import annotations

from inputmax.ai.pipeline.contracts import CEFRLevel
from inputmax.utils.languages import is_chinese_language, is_cjk_language

TRANSLATOR_SYSTEM = "Translate naturally and idiomatically. Preserve sentence boundaries exactly."
SUMMARY_SYSTEM = "You write concise continuity notes for serialized stories."

_CJK_GUIDANCE: dict[str, str] = {
  "A1": (
    "Use VERY short sentences (3–8 words; one clause). Use only very common, everyday words. Avoid idioms and figurative language. "
    "Prefer present-tense, concrete statements with a stable pattern.\n\n"
    "Guidance for beginners:\n"
    "• Keep one idea per sentence; no subordinate clauses.\n"
    "• Use simple connectors only (and, but, because).\n"
    "• Repeat key nouns instead of pronouns to keep reference clear.\n"
    "• Avoid rare characters, archaic forms, or literary style.\n"
    "• Keep particles/markers minimal and highly conventional.\n"
    "• Prefer SVO-like basic patterns and straightforward word order.\n"
    "• Use numbers and names in the simplest possible way."
  ),
  "A2": (
    "Use short, clear sentences. Everyday vocabulary with simple topic terms. Use basic connectors (and, but, because, so). "
    "Avoid rare expressions and advanced patterns. Keep morphology/particles/markers simple and consistent."
  ),
  "B1": (
    "Use clear sentences of moderate length. Employ common connectors and limited subordination. Allow some topic-specific vocabulary, "
    "but keep explanations concrete. Maintain straightforward clause order and avoid heavy embedding."
  ),
  "B2": (
    "Use varied sentence patterns with natural connectors and some subordinate clauses. Introduce more abstract vocabulary and explanations "
    "while keeping clarity. Use cohesive devices appropriately without overcomplicating."
  ),
  "C1": (
    "Use complex structures and nuanced vocabulary with precise register. Employ idiomatic or set phrases when natural. "
    "Vary clause patterns and show clear cohesion across paragraphs while maintaining natural flow."
  ),
  "C2": (
    "Use native-like, sophisticated language with precise nuance and flexible syntax. Idiomatic usage, advanced cohesion devices, "
    "and subtle register shifts are appropriate. Keep discourse highly natural."
  ),
}

_CHINESE_NOTES: dict[str, str] = {
  "B1": "Note for Chinese: Use aspect/phase markers naturally and only when needed (e.g., 了 for completed actions, 过 for past experiences, 在/正在 for ongoing actions). Avoid over-marking in simple statements.",
  "B2": "Note for Chinese: Keep aspect usage idiomatic (了 for completion/result, 过 for experience, 在/正在 for progressive). Prefer natural distribution over mechanical repetition; don’t add markers where context suffices.",
  "C1": "Note for Chinese: Use aspect markers with native-like subtlety; let discourse context license omission or inclusion. Balance 了/过/在(正在) with resultative complements and discourse particles as appropriate.",
  "C2": "Note for Chinese: Demonstrate idiomatic control of aspect and Aktionsart (e.g., 了/过/在(正在)) with pragmatically appropriate omission, including sensitivity to information structure and discourse flow.",
}

_ALPHABETIC_GUIDANCE: dict[str, str] = {
  "A1": (
    "Use VERY short sentences (4–10 words; one clause). Stick to high-frequency vocabulary. Avoid idioms, phrasal verbs, figurative language, "
    "and any complex tense or passive voice.\n\n"
    "Guidance for beginners:\n"
    "• One idea per sentence; no subordination or relative clauses.\n"
    "• Prefer present tense, active voice, SVO order.\n"
    "• Use simple connectors only (and, but, because).\n"
    "• Repeat key nouns instead of pronouns to keep reference clear.\n"
    "• Prefer concrete nouns and everyday actions.\n"
    "• Use only true cognates; avoid false friends.\n"
    "• Keep punctuation and capitalization standard and simple."
  ),
  "A2": "Use short, clear sentences. Everyday vocabulary. Simple connectors (and, but, because). Avoid uncommon expressions and advanced grammar. Limit subordinate clauses.",
  "B1": "Use clear sentences of moderate length. Common connectors (but, because, so). Limited subordinate clauses. Everyday and some topic vocabulary. Keep explanations concrete.",
  "B2": "Use varied sentence patterns with natural connectors and some subordinate clauses. Introduce abstract vocabulary but keep clarity high. Ensure good cohesion.",
  "C1": "Use complex structures and nuanced vocabulary, with precise register and hedging. Vary clause patterns while maintaining coherence and precision.",
  "C2": "Use highly natural, sophisticated language with precise nuance. Flexible syntax, idiomatic usage, and advanced cohesion devices appropriate for native-like mastery.",
}


def cefr_guidance(level: CEFRLevel, target_language: str) -> str:
  """Level guidance; CJK targets avoid word-frequency rules, Chinese adds aspect-marker notes from B1."""
  if not is_cjk_language(target_language):
    return _ALPHABETIC_GUIDANCE[level]

  text = _CJK_GUIDANCE[level]
  note = _CHINESE_NOTES.get(level)
  if note and is_chinese_language(target_language):
    return f"{text}\n\n{note}"
  return text


def render_writer_system(*, language: str, level: CEFRLevel, word_count: int) -> str:
  return f"""You are a world-class writer. Follow the user's prompt meticulously.
Write in {language}. Aim for ~{word_count} words total.
Write at CEFR level {level}.
Follow these constraints:
{cefr_guidance(level, language)}
Output format:
1) First line: short TITLE only (no quotes)
2) Blank line
3) Body text, paragraphs separated by one blank line
4) End every sentence with terminal punctuation (. ! ?). Never use terminal punctuation inside a sentence.
5) Do not insert line breaks inside a paragraph."""


def render_extend_prompt(*, story: str, language: str, level: CEFRLevel, word_count: int) -> str:
  return f"""Here is a story written in {language} at CEFR level {level}:

{story}

Continue the story with about {word_count} new words, in the same language, level, voice and paragraph style.
Rules:
- Pick up exactly where the text stops; do not restate or summarize earlier events.
- Do not repeat any sentence that already appears above.
- Do not bring the story to an ending; leave threads open.
- Do not use ellipses.
- Return ONLY the new paragraphs, without a title."""


def render_finalize_prompt(*, story: str, language: str, level: CEFRLevel, word_count: int) -> str:
  return f"""Here is a story written in {language} at CEFR level {level}:

{story}

Write the final part of this story with about {word_count} new words, in the same language, level, voice and paragraph style.
Rules:
- Pick up exactly where the text stops; do not restate earlier events.
- Do not repeat any sentence that already appears above.
- Resolve the open threads and bring the story to a satisfying close.
- Do not use ellipses.
- Return ONLY the new paragraphs, without a title."""


def render_translate_prompt(paragraph: str, *, target_language: str, source_language: str | None, sentence_count: int) -> str:
  source = f" from {source_language}" if source_language else ""
  return f"""Translate the following paragraph{source} into {target_language}.
The paragraph has {sentence_count} sentence(s). Your translation must have exactly {sentence_count} sentence(s), in the same order, each ending with terminal punctuation.
Do not merge or split sentences. Return ONLY the translated paragraph.

{paragraph}"""


def render_repair_prompt(sentences: list[str], draft: str, *, target_language: str) -> str:
  numbered = "\n".join(f"{index}. {sentence}" for index, sentence in enumerate(sentences, start=1))
  return f"""The source paragraph below has exactly {len(sentences)} sentences, numbered for reference:

{numbered}

This draft translation into {target_language} has the wrong number of sentences:

{draft}

Rewrite the translation so it has exactly {len(sentences)} sentences, one per source sentence, in the same order.
Each sentence must end with terminal punctuation and contain no other terminal punctuation.
Return ONLY the corrected paragraph as plain text, without numbers."""


def render_verify_prompt(translation: str, *, target_language: str, source_language: str | None) -> str:
  source = source_language or "the source language"
  return f"""Check this {target_language} text for words or phrases left untranslated in {source}:

{translation}

Replace any untranslated words with natural {target_language}. Do not change anything else.
Keep exactly the same sentences: do not merge, split, add or remove sentences, and keep all terminal punctuation.
Return ONLY the corrected text."""


def render_summary_prompt(text: str) -> str:
  return f"""Summarize this text in 2-3 sentences for continuation context. Focus on:
- Key events that happened
- Character states and relationships
- Unresolved elements or cliffhangers
- Emotional tone

Text:
{text}"""
