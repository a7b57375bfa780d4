"""Mistral chat backend (OpenAI-compatible schema)."""

from __future__ import annotations

from typing import Any

from talkloop.config import MistralSettings
from talkloop.core.history import ConversationMessage
from talkloop.services.llm.openai import OpenAIChatService

MISTRAL_CHAT_ENDPOINT = "https://api.mistral.ai/v1/chat/completions"


class MistralChatService(OpenAIChatService):
    provider = "mistral"
    default_endpoint = MISTRAL_CHAT_ENDPOINT
    _settings: MistralSettings

    def build_request(self, messages: tuple[ConversationMessage, ...]) -> dict[str, Any]:
        payload = super().build_request(messages)
        payload["safe_prompt"] = self._settings.safe_prompt
        return payload
