"""Pipeline contracts."""

from inputmax.ai.pipeline.contracts import ChatCompletionRequest, ChatCompletionResponse, ChatMessage, GenerationRequest, LessonText, SpeechRequest, TranslationResult

__all__ = ["ChatCompletionRequest", "ChatCompletionResponse", "ChatMessage", "GenerationRequest", "LessonText", "SpeechRequest", "TranslationResult"]
