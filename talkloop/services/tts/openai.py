"""OpenAI speech backend."""

from __future__ import annotations

from typing import Any

from talkloop.config import OpenAITTSSettings
from talkloop.services.tts.base import BaseTTSService

OPENAI_SPEECH_ENDPOINT = "https://api.openai.com/v1/audio/speech"


class OpenAITTSService(BaseTTSService):
    """Binary response in the configured format (mp3, opus, aac, flac)."""

    provider = "openai"
    _settings: OpenAITTSSettings

    def cache_key(self, text: str) -> str:
        s = self._settings
        return f"{s.model}|{s.voice}|{s.speed}|{s.response_format}|{text}"

    def build_request(self, text: str) -> dict[str, Any]:
        return {
            "model": self._settings.model,
            "input": text,
            "voice": self._settings.voice,
            "response_format": self._settings.response_format,
            "speed": self._settings.speed,
        }

    async def _fetch(self, text: str) -> tuple[bytes, str]:
        response = await self._send(
            "POST",
            self._settings.endpoint or OPENAI_SPEECH_ENDPOINT,
            json_body=self.build_request(text),
            headers={"Authorization": f"Bearer {self._api_key()}"},
        )
        return response.content, self._settings.response_format
