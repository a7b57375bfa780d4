"""OpenAI chat completions backend."""

from __future__ import annotations

from typing import Any

from talkloop.config import OpenAIChatSettings
from talkloop.core.history import ConversationMessage
from talkloop.services.exceptions import ResponseParseError
from talkloop.services.llm.base import BaseChatService

OPENAI_CHAT_ENDPOINT = "https://api.openai.com/v1/chat/completions"


class OpenAIChatService(BaseChatService):
    """Any endpoint speaking the OpenAI chat-completions schema."""

    provider = "openai"
    default_endpoint = OPENAI_CHAT_ENDPOINT
    _settings: OpenAIChatSettings

    def build_request(self, messages: tuple[ConversationMessage, ...]) -> dict[str, Any]:
        return {
            "model": self.model,
            "messages": [{"role": m.role.value, "content": m.content} for m in messages],
            "temperature": self._settings.temperature,
            "max_tokens": self._settings.max_tokens,
            "top_p": self._settings.top_p,
            "presence_penalty": self._settings.presence_penalty,
            "frequency_penalty": self._settings.frequency_penalty,
        }

    def parse_reply(self, payload: Any) -> str:
        """``choices[0].message.content``."""
        try:
            content = payload["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise ResponseParseError(
                "Missing choices[0].message.content", stage=self.stage, raw=str(payload)[:200]
            ) from e
        if content is None:
            raise ResponseParseError("Reply content is null", stage=self.stage, raw=str(payload)[:200])
        return str(content).strip()
