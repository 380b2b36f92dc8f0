"""Test doubles for chat models, speech models and the hold backend."""

from __future__ import annotations

from collections.abc import Callable

from inputmax.ai.providers.base import AIModel, SimpleModelResponse, SpeechModel
from inputmax.ai.utils.segmentation import split_sentences
from inputmax.services.ledger import CreditLedger

DEVICE_ID = "device-test"


class ManualClock:
  """Controllable time source for ledger and store tests."""

  def __init__(self, start: float = 1_700_000_000.0) -> None:
    self.now = start

  def __call__(self) -> float:
    return self.now

  def advance(self, seconds: float) -> None:
    self.now += seconds


class ScriptedModel(AIModel):
  """Chat model answering each call through a handler; records every call."""

  def __init__(self, handler: Callable[[str, str | None], str], name: str = "scripted") -> None:
    self.name = name
    self._handler = handler
    self.calls: list[tuple[str, str | None]] = []

  async def generate(self, prompt: str, *, system: str | None = None) -> SimpleModelResponse:
    self.calls.append((prompt, system))
    return SimpleModelResponse(content=self._handler(prompt, system), usage={"prompt_tokens": 1, "completion_tokens": 1})


class QueueModel(AIModel):
  """Chat model returning canned replies in order."""

  def __init__(self, replies: list[str]) -> None:
    self.name = "queue"
    self._replies = list(replies)
    self.prompts: list[str] = []

  async def generate(self, prompt: str, *, system: str | None = None) -> SimpleModelResponse:
    self.prompts.append(prompt)
    if not self._replies:
      raise AssertionError("no scripted reply left")
    return SimpleModelResponse(content=self._replies.pop(0))


class FakeSpeechModel(SpeechModel):
  def __init__(self) -> None:
    self.name = "fake-tts"
    self.calls: list[tuple[str, str]] = []

  async def synthesize(self, text: str, *, language: str, speed: str = "regular") -> bytes:
    self.calls.append((text, language))
    return b"ID3" + text.encode("utf-8")


def _last_block(prompt: str) -> str:
  return prompt.rsplit("\n\n", 1)[-1]


def story_handler() -> Callable[[str, str | None], str]:
  """Handler that writes, extends, translates and summarizes predictably."""
  counters = {"extend": 0}

  def handle(prompt: str, system: str | None) -> str:
    if system and system.startswith("You are a world-class writer"):
      return "O Mercado\n\nA feira abre cedo. Maria chega com frutas.\n\nO sol brilha na praça. As pessoas conversam."
    if prompt.startswith("Here is a story") and "Continue the story" in prompt:
      counters["extend"] += 1
      step = counters["extend"]
      return f"Maria vende a manga número {step}. Um cliente sorri {step} vezes.\n\nO vento muda na hora {step}."
    if prompt.startswith("Here is a story") and "final part" in prompt:
      return "No fim do dia, Maria descansa. A feira fecha feliz."
    if prompt.startswith("Translate the following paragraph"):
      count = len(split_sentences(_last_block(prompt)))
      return " ".join(f"Translated sentence {index}." for index in range(1, count + 1))
    if prompt.startswith("Check this"):
      return prompt.split("\n\n")[1]
    if prompt.startswith("Summarize this text"):
      return "Maria sold fruit at the market."
    raise AssertionError(f"unexpected prompt: {prompt[:60]}")

  return handle


class LedgerHoldBackend:
  """Adapts CreditLedger to the hold API used by the pipeline, for one device."""

  def __init__(self, ledger: CreditLedger, device_id: str = DEVICE_ID) -> None:
    self.ledger = ledger
    self.device_id = device_id
    self.events: list[tuple[str, str]] = []

  async def start_job(self, amount: int, *, job_id: str | None = None, ttl_seconds: int | None = None) -> str:
    hold = await self.ledger.start_job(self.device_id, amount, job_id=job_id, ttl_seconds=ttl_seconds)
    self.events.append(("start", hold.job_id))
    return hold.job_id

  async def commit_job(self, job_id: str) -> int | None:
    self.events.append(("commit", job_id))
    return (await self.ledger.commit_job(self.device_id, job_id)).balance

  async def cancel_job(self, job_id: str) -> int | None:
    self.events.append(("cancel", job_id))
    return (await self.ledger.cancel_job(self.device_id, job_id)).balance
