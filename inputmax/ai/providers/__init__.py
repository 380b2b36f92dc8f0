"""Provider implementations."""

from inputmax.ai.providers.base import AIModel, ModelResponse, SimpleModelResponse, SpeechModel
from inputmax.ai.providers.proxy import ProxyChatModel, ProxyClient, ProxySpeechModel

__all__ = ["AIModel", "ModelResponse", "SimpleModelResponse", "SpeechModel", "ProxyChatModel", "ProxyClient", "ProxySpeechModel"]
