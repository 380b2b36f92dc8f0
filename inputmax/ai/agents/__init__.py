"""Agent implementations."""

from inputmax.ai.agents.base import BaseAgent
from inputmax.ai.agents.elevator import ElevationInput, elevate
from inputmax.ai.agents.narrator import NarrativeGenerator
from inputmax.ai.agents.speech import SpeechSynthesizer
from inputmax.ai.agents.summarizer import StorySummarizer
from inputmax.ai.agents.translator import AlignedTranslator

__all__ = ["AlignedTranslator", "BaseAgent", "ElevationInput", "NarrativeGenerator", "SpeechSynthesizer", "StorySummarizer", "elevate"]
