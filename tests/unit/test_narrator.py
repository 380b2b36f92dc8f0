from __future__ import annotations

import pytest

from inputmax.ai.agents.narrator import NarrativeGenerator, dedupe_extension, normalize_terminal_punctuation, parse_lesson_text, split_into_parts
from inputmax.ai.utils.segmentation import raw_paragraphs
from tests.fakes import QueueModel, ScriptedModel, story_handler


def test_parse_lesson_text_cleans_title() -> None:
  lesson = parse_lesson_text('# Title: "A FEIRA"\n\nMaria chega cedo.\nEla sorri.\n\nO sol brilha.')
  assert lesson.title == "A Feira"
  assert lesson.body == "Maria chega cedo. Ela sorri.\n\nO sol brilha."


def test_parse_lesson_text_without_title_line() -> None:
  lesson = parse_lesson_text("Só uma linha.")
  assert lesson.title == "Untitled"
  assert lesson.body == "Só uma linha."


def test_normalize_terminal_punctuation_moves_period_inside_quote() -> None:
  assert normalize_terminal_punctuation('Ele disse "Oi".') == 'Ele disse "Oi."'
  assert normalize_terminal_punctuation('Ele disse "Oi!".') == 'Ele disse "Oi!".'


def test_dedupe_extension_drops_repeats_and_ellipses() -> None:
  story = "Maria chega cedo. Ela sorri."
  extension = "Maria chega cedo! Depois... ela compra pão.\n\nEla sorri."
  assert dedupe_extension(story, extension) == "Depois. ela compra pão."


@pytest.mark.anyio
async def test_generate_uses_writer_system_and_parses_output() -> None:
  model = ScriptedModel(story_handler())
  lesson = await NarrativeGenerator(model=model).generate("brief", language="Portuguese (Brazil)", level="A2", word_count=120)
  assert lesson.title == "O Mercado"
  assert len(raw_paragraphs(lesson.body)) == 2
  _, system = model.calls[0]
  assert "Aim for ~120 words" in system
  assert "CEFR level A2" in system


@pytest.mark.anyio
async def test_generate_rejects_empty_body() -> None:
  with pytest.raises(ValueError):
    await NarrativeGenerator(model=QueueModel(["   "])).generate("brief", language="German", level="B1", word_count=100)


@pytest.mark.anyio
async def test_three_part_iterative_story_splits_into_three_slices() -> None:
  model = ScriptedModel(story_handler())
  usage: list[dict] = []
  narrator = NarrativeGenerator(model=model, use=usage.append)

  story = await narrator.generate_iteratively("brief", language="Portuguese (Brazil)", level="B1", total_words=900, part_count=3)

  assert len(model.calls) == 3
  assert "Aim for ~300 words" in model.calls[0][1]
  assert "about 300 new words" in model.calls[1][0]
  assert "final part" in model.calls[2][0]
  # Each later call sees the whole story so far.
  assert "A feira abre cedo." in model.calls[2][0]
  assert "Maria vende a manga número 1." in model.calls[2][0]

  slices = split_into_parts(story.body, 3)
  assert len(slices) == 3
  assert all(piece.strip() for piece in slices)
  assert [entry["purpose"] for entry in usage] == ["generate_lesson", "extend_story", "finalize_story"]


@pytest.mark.anyio
async def test_iterative_single_part_is_a_plain_generation() -> None:
  model = ScriptedModel(story_handler())
  await NarrativeGenerator(model=model).generate_iteratively("brief", language="Portuguese (Brazil)", level="B1", total_words=300, part_count=1)
  assert len(model.calls) == 1


@pytest.mark.anyio
async def test_iterative_skips_extensions_that_only_repeat() -> None:
  model = QueueModel(["Título\n\nUm dia. Dois dias.", "Um dia. Dois dias.", "Três dias."])
  story = await NarrativeGenerator(model=model).generate_iteratively("brief", language="Portuguese (Brazil)", level="A1", total_words=300, part_count=3)
  assert story.body == "Um dia. Dois dias.\n\nTrês dias."
