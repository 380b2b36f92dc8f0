"""Continuity summaries handed from one series part to the next."""

from __future__ import annotations

from inputmax.ai.agents.base import BaseAgent
from inputmax.ai.agents.prompts import SUMMARY_SYSTEM, render_summary_prompt


class StorySummarizer(BaseAgent):
  name = "Summarizer"

  async def summarize(self, text: str) -> str:
    return await self._complete(render_summary_prompt(text), system=SUMMARY_SYSTEM, purpose="summarize_part")
