"""Google Gemini generateContent backend."""

from __future__ import annotations

from typing import Any

from talkloop.config import GeminiSettings
from talkloop.core.history import ConversationMessage, Role
from talkloop.services.exceptions import ResponseParseError
from talkloop.services.llm.base import BaseChatService

GEMINI_ENDPOINT_TEMPLATE = (
    "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
)


class GeminiChatService(BaseChatService):
    """Gemini keeps the system prompt apart and calls the assistant ``model``."""

    provider = "gemini"
    _settings: GeminiSettings

    @property
    def endpoint(self) -> str:
        return self._settings.endpoint or GEMINI_ENDPOINT_TEMPLATE.format(model=self.model)

    def auth_headers(self) -> dict[str, str]:
        return {}

    def auth_params(self) -> dict[str, str]:
        return {"key": self._api_key()}

    def build_request(self, messages: tuple[ConversationMessage, ...]) -> dict[str, Any]:
        system = [m.content for m in messages if m.role is Role.SYSTEM]
        contents = [
            {
                "role": "model" if m.role is Role.ASSISTANT else "user",
                "parts": [{"text": m.content}],
            }
            for m in messages
            if m.role is not Role.SYSTEM
        ]
        payload: dict[str, Any] = {
            "contents": contents,
            "generationConfig": {
                "temperature": self._settings.temperature,
                "maxOutputTokens": self._settings.max_tokens,
                "topP": self._settings.top_p,
                "topK": self._settings.top_k,
            },
        }
        if system and system[0]:
            payload["system_instruction"] = {"parts": [{"text": system[0]}]}
        return payload

    def parse_reply(self, payload: Any) -> str:
        """``candidates[0].content.parts[0].text``."""
        try:
            text = payload["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as e:
            raise ResponseParseError(
                "Missing candidates[0].content.parts[0].text",
                stage=self.stage,
                raw=str(payload)[:200],
            ) from e
        return str(text).strip()
