"""Local Ollama backend using the single-prompt generate endpoint."""

from __future__ import annotations

from typing import Any

from talkloop.config import OllamaSettings
from talkloop.core.history import ConversationMessage, Role
from talkloop.services.exceptions import ResponseParseError
from talkloop.services.llm.base import BaseChatService

OLLAMA_GENERATE_ENDPOINT = "http://localhost:11434/api/generate"


def build_inst_prompt(messages: tuple[ConversationMessage, ...]) -> str:
    """Flatten a conversation into a Llama-2 style ``[INST]`` prompt."""
    lines: list[str] = []
    for message in messages:
        if message.role is Role.SYSTEM:
            lines.append(f"<s>[INST] <<SYS>>\n{message.content}\n<</SYS>>\n\n")
        elif message.role is Role.USER:
            prefix = "" if lines else "<s>"
            lines.append(f"{prefix}[INST] {message.content} [/INST]")
        else:
            lines.append(f"{message.content}</s>")
    return "".join(f"{line}\n" for line in lines)


class OllamaChatService(BaseChatService):
    provider = "ollama"
    requires_api_key = False
    default_endpoint = OLLAMA_GENERATE_ENDPOINT
    _settings: OllamaSettings

    def auth_headers(self) -> dict[str, str]:
        return {}

    def build_request(self, messages: tuple[ConversationMessage, ...]) -> dict[str, Any]:
        return {
            "model": self.model,
            "prompt": build_inst_prompt(messages),
            "stream": False,
            "options": {
                "temperature": self._settings.temperature,
                "num_predict": self._settings.max_tokens,
                "top_p": self._settings.top_p,
                "top_k": self._settings.top_k,
            },
        }

    def parse_reply(self, payload: Any) -> str:
        if not isinstance(payload, dict) or not isinstance(payload.get("response"), str):
            raise ResponseParseError(
                "Missing 'response' string", stage=self.stage, raw=str(payload)[:200]
            )
        return payload["response"].strip()
