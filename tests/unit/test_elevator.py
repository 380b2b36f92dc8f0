from __future__ import annotations

import pytest

from inputmax.ai.agents.elevator import MAX_MUST_COVER, ElevationInput, elevate, infer_purpose, must_cover_points, paragraph_plan
from inputmax.ai.agents.prompts import cefr_guidance, render_repair_prompt, render_translate_prompt


def test_elevate_is_deterministic_and_carries_constraints() -> None:
  data = ElevationInput(material="capoeira at dawn", target_language="Portuguese (Brazil)", word_count=300, level="B1", is_topic=True)
  first = elevate(data)
  assert first == elevate(data)
  assert "Purpose: narrate." in first
  assert "about 300 words" in first
  assert "CEFR level: B1" in first
  assert "Topic: capoeira at dawn" in first
  assert cefr_guidance("B1", "Portuguese (Brazil)") in first


def test_elevate_includes_continuity_for_later_parts() -> None:
  data = ElevationInput(
    material="A detective story in Lisbon",
    target_language="Portuguese (Portugal)",
    word_count=200,
    level="A2",
    previous_summary="Ana found a key under the bridge.",
    part_number=2,
  )
  brief = elevate(data)
  assert "part 2 of an ongoing series" in brief
  assert "Ana found a key under the bridge." in brief
  assert "Pick up directly where the previous part ended" in brief


def test_elevate_rejects_empty_material() -> None:
  with pytest.raises(ValueError):
    elevate(ElevationInput(material="   ", target_language="German", word_count=100, level="A1"))


@pytest.mark.parametrize(
  ("material", "is_topic", "purpose"),
  [
    ("Explain how bread rises", False, "explain"),
    ("Write a story about a fox", False, "narrate"),
    ("tea in Japan", True, "narrate"),
    ("tea in Japan", False, "inform"),
    ("Summarize the news today", False, "summarize"),
  ],
)
def test_infer_purpose(material: str, is_topic: bool, purpose: str) -> None:
  assert infer_purpose(material, is_topic=is_topic) == purpose


def test_paragraph_plan_scales_with_level() -> None:
  assert len(paragraph_plan(300, "A1", continuing=False)) == 6
  assert len(paragraph_plan(300, "C2", continuing=False)) == 3
  assert len(paragraph_plan(40, "B1", continuing=False)) == 2


def test_must_cover_points_are_capped() -> None:
  material = " ".join(f"Point {index}." for index in range(12))
  points = must_cover_points(material)
  assert len(points) == MAX_MUST_COVER
  assert points[0] == "Point 0."


def test_cjk_guidance_and_chinese_notes() -> None:
  assert cefr_guidance("B1", "Japanese") != cefr_guidance("B1", "Spanish")
  assert "Note for Chinese" not in cefr_guidance("B1", "Japanese")
  assert "Note for Chinese" in cefr_guidance("B1", "Chinese (Simplified)")
  assert "Note for Chinese" not in cefr_guidance("A2", "Chinese (Simplified)")


def test_translation_prompts_state_sentence_count() -> None:
  assert "exactly 2 sentence(s)" in render_translate_prompt("Hello. How are you?", target_language="French", source_language="English", sentence_count=2)
  repair = render_repair_prompt(["Hello.", "How are you?"], "Bonjour, comment ça va?", target_language="French")
  assert "1. Hello.\n2. How are you?" in repair
