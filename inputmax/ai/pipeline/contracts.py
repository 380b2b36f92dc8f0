"""Shared data contracts for the generation pipeline and the edge chat/speech calls."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from inputmax.ai.errors import AlignmentFailure

CEFRLevel = Literal["A1", "A2", "B1", "B2", "C1", "C2"]
GenerationMode = Literal["random", "prompt"]
SpeechSpeed = Literal["regular", "slow"]
Segmentation = Literal["sentences", "paragraphs"]

DEFAULT_RANDOM_TOPIC = "capoeira rodas ao amanhecer"


class GenerationRequest(BaseModel):
  """Inputs for a single lesson generation."""

  mode: GenerationMode = "prompt"
  user_prompt: str = ""
  user_chosen_topic: str | None = None
  topic_pool: list[str] | None = None
  gen_language: str
  trans_language: str
  segmentation: Segmentation = "sentences"
  length_words: int = Field(default=300, ge=50, le=5000)
  speech_speed: SpeechSpeed = "regular"
  language_level: CEFRLevel = "B1"
  previous_summary: str | None = None
  series_id: str | None = None
  part_number: int | None = Field(default=None, ge=1)
  total_parts: int | None = Field(default=None, ge=1)

  @model_validator(mode="after")
  def _check_parts(self) -> GenerationRequest:
    if self.part_number is not None and self.total_parts is not None and self.part_number > self.total_parts:
      raise ValueError("part_number must not exceed total_parts")
    return self


class LessonText(BaseModel):
  """A titled plain-text passage; paragraphs separated by blank lines."""

  title: str
  body: str


class TranslationResult(BaseModel):
  """Translated text plus paragraphs whose sentence counts never converged."""

  model_config = ConfigDict(arbitrary_types_allowed=True)

  text: str
  misaligned_paragraphs: list[AlignmentFailure] = Field(default_factory=list)

  @property
  def aligned(self) -> bool:
    return not self.misaligned_paragraphs


class ChatMessage(BaseModel):
  role: Literal["system", "user", "assistant"]
  content: str


class ChatCompletionRequest(BaseModel):
  """Payload sent to /chat; mirrors the chat-completions request shape."""

  model_config = ConfigDict(extra="allow")

  model: str
  messages: list[ChatMessage] = Field(min_length=1)


class ChatUsage(BaseModel):
  model_config = ConfigDict(extra="ignore")

  prompt_tokens: int = 0
  completion_tokens: int = 0
  total_tokens: int = 0


class ChatChoiceMessage(BaseModel):
  model_config = ConfigDict(extra="ignore")

  role: str = "assistant"
  content: str | None = None


class ChatChoice(BaseModel):
  model_config = ConfigDict(extra="ignore")

  index: int = 0
  message: ChatChoiceMessage


class ChatCompletionResponse(BaseModel):
  """The subset of a chat-completions response the pipeline reads."""

  model_config = ConfigDict(extra="ignore")

  choices: list[ChatChoice] = Field(min_length=1)
  usage: ChatUsage | None = None

  @property
  def content(self) -> str:
    return (self.choices[0].message.content or "").strip()


class SpeechRequest(BaseModel):
  """Payload sent to /tts."""

  text: str = Field(min_length=1)
  language: str | None = None
  speed: SpeechSpeed = "regular"
  voice: str | None = None
  format: Literal["mp3", "wav", "flac"] = "mp3"
