"""LLM services (OpenAI, Mistral, Gemini, Ollama)."""

from talkloop.services.llm.base import BaseChatService
from talkloop.services.llm.gemini import GeminiChatService
from talkloop.services.llm.mistral import MistralChatService
from talkloop.services.llm.ollama import OllamaChatService
from talkloop.services.llm.openai import OpenAIChatService
from talkloop.services.llm.protocol import LLMService

__all__ = [
    # Protocol
    "LLMService",
    # Implementations
    "BaseChatService",
    "OpenAIChatService",
    "MistralChatService",
    "GeminiChatService",
    "OllamaChatService",
]
