"""Google Cloud Text-to-Speech backend."""

from __future__ import annotations

import base64
import binascii
from typing import Any

from talkloop.config import GoogleTTSSettings
from talkloop.services.exceptions import ResponseParseError
from talkloop.services.http import parse_json
from talkloop.services.tts.base import BaseTTSService

GOOGLE_TTS_ENDPOINT = "https://texttospeech.googleapis.com/v1/text:synthesize"


class GoogleTTSService(BaseTTSService):
    """Returns base64 MP3 inside a JSON ``audioContent`` field."""

    provider = "google"
    _settings: GoogleTTSSettings

    def cache_key(self, text: str) -> str:
        s = self._settings
        return f"{s.voice_name}|{s.speaking_rate}|{s.pitch}|{text}"

    def build_request(self, text: str) -> dict[str, Any]:
        voice: dict[str, Any] = {"languageCode": self._settings.language_code}
        if self._settings.voice_name:
            voice["name"] = self._settings.voice_name
        return {
            "input": {"text": text},
            "voice": voice,
            "audioConfig": {
                "audioEncoding": "MP3",
                "speakingRate": self._settings.speaking_rate,
                "pitch": self._settings.pitch,
            },
        }

    async def _fetch(self, text: str) -> tuple[bytes, str]:
        response = await self._send(
            "POST",
            self._settings.endpoint or GOOGLE_TTS_ENDPOINT,
            json_body=self.build_request(text),
            params={"key": self._api_key()},
        )
        payload = parse_json(response, stage=self.stage)
        content = payload.get("audioContent") if isinstance(payload, dict) else None
        if not content:
            raise ResponseParseError(
                "Response has no audioContent", stage=self.stage, raw=response.text[:200]
            )
        try:
            return base64.b64decode(content, validate=True), "mp3"
        except (binascii.Error, ValueError) as e:
            raise ResponseParseError(
                "audioContent is not valid base64", stage=self.stage, raw=str(content)[:200]
            ) from e
