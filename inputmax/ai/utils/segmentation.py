"""Sentence and paragraph splitting shared by translation, segmentation and series slicing."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal

SegmentationMode = Literal["sentences", "paragraphs"]

TERMINALS = frozenset(".!?…。！？")
ASCII_TERMINALS = frozenset(".!?")
CLOSERS = frozenset("\"'”’»)]}」』）】")
_BLANK_LINES = re.compile(r"\n\s*\n+")
_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class SegmentDraft:
  """One aligned playback unit before audio is attached."""

  id: int
  primary_text: str
  secondary_text: str
  paragraph_index: int


def _is_ascii_alnum(char: str) -> bool:
  return char.isascii() and char.isalnum()


def _ensure_terminal(fragment: str) -> str:
  """Add a period when a fragment ends without terminal punctuation, keeping closers last."""
  core = fragment.rstrip("".join(CLOSERS))
  if not core or core[-1] in TERMINALS:
    return fragment
  return f"{core}.{fragment[len(core) :]}"


def split_sentences(text: str) -> list[str]:
  """
  Split text into sentences.

  A boundary is a run of terminal marks (. ! ? … and full-width 。！？)
  followed by any closing quotes or brackets, which stay attached to the
  sentence. An ASCII mark directly followed by an ASCII letter or digit
  (3.14, e.g) is not a boundary. A final fragment that ends in a closer
  without terminal punctuation gets a period inserted before the closer.
  """
  sentences: list[str] = []
  start = 0
  index = 0
  length = len(text)
  while index < length:
    char = text[index]
    if char not in TERMINALS:
      index += 1
      continue
    if char in ASCII_TERMINALS and index + 1 < length and _is_ascii_alnum(text[index + 1]):
      index += 1
      continue
    end = index + 1
    while end < length and text[end] in TERMINALS:
      end += 1
    while end < length and text[end] in CLOSERS:
      end += 1
    sentence = text[start:end].strip()
    if sentence:
      sentences.append(sentence)
    start = end
    index = end

  tail = text[start:].strip()
  if tail:
    if tail[-1] in CLOSERS:
      tail = _ensure_terminal(tail)
    sentences.append(tail)
  return sentences


def count_sentences(text: str) -> int:
  return sum(len(split_sentences(paragraph)) for paragraph in raw_paragraphs(text))


def raw_paragraphs(text: str) -> list[str]:
  """Paragraphs separated by blank lines, single line breaks folded into spaces."""
  normalized = text.replace("\r\n", "\n").replace("\r", "\n")
  paragraphs: list[str] = []
  for block in _BLANK_LINES.split(normalized):
    folded = _WHITESPACE.sub(" ", block).strip()
    if folded:
      paragraphs.append(folded)
  return paragraphs


def split_paragraphs(text: str) -> list[str]:
  """Paragraphs for playback: trimmed, non-empty, always ending in terminal punctuation."""
  return [_ensure_terminal(paragraph) for paragraph in raw_paragraphs(text)]


def join_paragraphs(paragraphs: list[str]) -> str:
  return "\n\n".join(paragraphs)


def partition_bounds(total: int, parts: int) -> list[tuple[int, int]]:
  """Contiguous [start, end) ranges; each gets total // parts items, the last absorbs the rest."""
  if parts < 1:
    raise ValueError("parts must be at least 1")
  if total < parts:
    raise ValueError(f"cannot split {total} units into {parts} non-empty parts")
  size = total // parts
  bounds = [(index * size, (index + 1) * size) for index in range(parts - 1)]
  bounds.append(((parts - 1) * size, total))
  return bounds


def split_into_parts(story: str, part_count: int) -> list[str]:
  """
  Split a story into part_count contiguous, non-empty slices.

  Paragraph groups are preferred. With fewer paragraphs than parts the
  sentences are regrouped instead; a story with fewer sentences than parts
  raises ValueError.
  """
  if part_count < 1:
    raise ValueError("part_count must be at least 1")

  paragraphs = raw_paragraphs(story)
  if len(paragraphs) >= part_count:
    return [join_paragraphs(paragraphs[start:end]) for start, end in partition_bounds(len(paragraphs), part_count)]

  sentences = [sentence for paragraph in paragraphs for sentence in split_sentences(paragraph)]
  if len(sentences) < part_count:
    raise ValueError(f"story has {len(sentences)} sentences; cannot split into {part_count} parts")
  return [" ".join(sentences[start:end]) for start, end in partition_bounds(len(sentences), part_count)]


class Segmenter:
  """Pair primary and secondary text into aligned segments."""

  def __init__(self, mode: SegmentationMode = "sentences") -> None:
    if mode not in ("sentences", "paragraphs"):
      raise ValueError(f"Unsupported segmentation mode: {mode}")
    self.mode = mode

  def build(self, primary: str, secondary: str) -> list[SegmentDraft]:
    if self.mode == "paragraphs":
      primary_units = [(index, paragraph) for index, paragraph in enumerate(split_paragraphs(primary))]
      secondary_units = split_paragraphs(secondary)
    else:
      primary_units = [(index, sentence) for index, paragraph in enumerate(raw_paragraphs(primary)) for sentence in split_sentences(paragraph)]
      secondary_units = [sentence for paragraph in raw_paragraphs(secondary) for sentence in split_sentences(paragraph)]

    # Extra units on the longer side are dropped; counts already diverged upstream.
    count = min(len(primary_units), len(secondary_units))
    return [
      SegmentDraft(id=position + 1, primary_text=primary_units[position][1], secondary_text=secondary_units[position], paragraph_index=primary_units[position][0])
      for position in range(count)
    ]
