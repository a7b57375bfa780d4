"""ElevenLabs TTS backend for high-naturalness speech."""

from __future__ import annotations

from typing import Any

from talkloop.config import ElevenLabsSettings
from talkloop.services.exceptions import ConfigurationError
from talkloop.services.tts.base import BaseTTSService

ELEVENLABS_ENDPOINT = "https://api.elevenlabs.io/v1/text-to-speech"


class ElevenLabsTTSService(BaseTTSService):
    """Returns MP3 bytes for a fixed voice id."""

    provider = "elevenlabs"
    _settings: ElevenLabsSettings

    def check_configuration(self) -> None:
        super().check_configuration()
        if not self._settings.voice_id:
            raise ConfigurationError("ElevenLabs voice id is not configured", stage=self.stage)

    def cache_key(self, text: str) -> str:
        s = self._settings
        return f"{s.voice_id}|{s.model}|{s.stability}|{s.similarity_boost}|{s.style}|{text}"

    def build_request(self, text: str) -> dict[str, Any]:
        return {
            "text": text,
            "model_id": self._settings.model,
            "voice_settings": {
                "stability": self._settings.stability,
                "similarity_boost": self._settings.similarity_boost,
                "style": self._settings.style,
                "use_speaker_boost": self._settings.use_speaker_boost,
            },
        }

    async def _fetch(self, text: str) -> tuple[bytes, str]:
        base = (self._settings.endpoint or ELEVENLABS_ENDPOINT).rstrip("/")
        response = await self._send(
            "POST",
            f"{base}/{self._settings.voice_id}",
            json_body=self.build_request(text),
            headers={"xi-api-key": self._api_key(), "Accept": "audio/mpeg"},
        )
        return response.content, "mp3"
