from __future__ import annotations

import pytest

from inputmax.ai.agents.translator import AlignedTranslator
from inputmax.ai.errors import AlignmentFailure
from inputmax.ai.utils.segmentation import count_sentences, raw_paragraphs, split_sentences
from tests.fakes import QueueModel, ScriptedModel, story_handler


@pytest.mark.anyio
async def test_repair_pass_restores_sentence_count() -> None:
  model = QueueModel(["Bonjour, comment ça va?", "Bonjour. Comment ça va?", "Bonjour. Comment allez-vous?"])
  result = await AlignedTranslator(model=model).translate("Hello. How are you?", target_language="French", source_language="English")

  assert split_sentences(result.text) == ["Bonjour.", "Comment allez-vous?"]
  assert result.aligned
  assert "exactly 2 sentences" in model.prompts[1]


@pytest.mark.anyio
async def test_unrepairable_paragraph_keeps_draft_and_is_reported() -> None:
  model = QueueModel(["Bonjour, how are you?", "Salut, ça va?", "Bonjour, comment allez-vous?"])
  result = await AlignedTranslator(model=model).translate("Hello. How are you?", target_language="French", source_language="English")

  assert result.text == "Bonjour, comment allez-vous?"
  assert result.misaligned_paragraphs == [AlignmentFailure(paragraph_index=0, source_sentences=2, translated_sentences=1)]
  assert len(model.prompts) == 3
  assert model.prompts[2].startswith("Check this")
  assert "Bonjour, how are you?" in model.prompts[2]


@pytest.mark.anyio
async def test_verification_of_misaligned_draft_must_keep_its_count() -> None:
  model = QueueModel(["Bonjour, comment ça va?", "Salut, ça va?", "Bonjour. Comment ça va?"])
  result = await AlignedTranslator(model=model).translate("Hello. How are you?", target_language="French", source_language="English")

  assert result.text == "Bonjour, comment ça va?"
  assert not result.aligned


@pytest.mark.anyio
async def test_verification_that_changes_count_is_discarded() -> None:
  model = QueueModel(["Hallo. Wie geht es dir?", "Hallo, wie geht es dir?"])
  result = await AlignedTranslator(model=model).translate("Hello. How are you?", target_language="German", source_language="English")
  assert result.text == "Hallo. Wie geht es dir?"
  assert result.aligned


@pytest.mark.anyio
async def test_multi_line_reply_is_flattened_to_one_paragraph() -> None:
  model = QueueModel(["Hola.\n\n¿Cómo estás?", "Hola. ¿Cómo estás?"])
  result = await AlignedTranslator(model=model).translate("Hello. How are you?", target_language="Spanish")
  assert result.text == "Hola. ¿Cómo estás?"


@pytest.mark.anyio
async def test_paragraphs_are_translated_independently_and_in_order() -> None:
  model = ScriptedModel(story_handler())
  source = "A feira abre cedo. Maria chega.\n\nO sol brilha.\n\nUm. Dois. Três."
  result = await AlignedTranslator(model=model).translate(source, target_language="English", source_language="Portuguese (Brazil)")

  paragraphs = raw_paragraphs(result.text)
  assert [count_sentences(paragraph) for paragraph in paragraphs] == [2, 1, 3]
  assert result.aligned
  assert len(model.calls) == 6


@pytest.mark.anyio
async def test_same_language_skips_the_model() -> None:
  model = QueueModel([])
  result = await AlignedTranslator(model=model).translate("Hallo.\n\nTschüss.", target_language="German", source_language="german")
  assert result.text == "Hallo.\n\nTschüss."
  assert model.prompts == []
