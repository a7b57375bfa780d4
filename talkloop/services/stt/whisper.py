"""OpenAI Whisper transcription backend (multipart upload)."""

from __future__ import annotations

from typing import Any

from talkloop.config import WhisperSettings
from talkloop.services.audio.codec import SpeechSample
from talkloop.services.exceptions import ResponseParseError
from talkloop.services.http import parse_json
from talkloop.services.stt.base import BaseSTTService
from talkloop.services.stt.protocol import TranscriptResult

WHISPER_ENDPOINT = "https://api.openai.com/v1/audio/transcriptions"


class WhisperSTTService(BaseSTTService):
    """Uploads the recording as ``recording.wav``."""

    provider = "whisper"
    _settings: WhisperSettings

    def build_form(self) -> dict[str, str]:
        form = {
            "model": self._settings.model or "whisper-1",
            "response_format": self._settings.response_format,
            "temperature": str(self._settings.temperature),
        }
        if self._settings.language:
            form["language"] = self._settings.language
        return form

    async def _transcribe(self, wav: bytes, sample: SpeechSample) -> TranscriptResult:
        response = await self._send(
            "POST",
            self._settings.endpoint or WHISPER_ENDPOINT,
            data=self.build_form(),
            files={"file": ("recording.wav", wav, "audio/wav")},
            headers={"Authorization": f"Bearer {self._api_key()}"},
        )

        if self._settings.response_format == "text":
            text = response.text
        else:
            payload: Any = parse_json(response, stage=self.stage)
            if not isinstance(payload, dict) or "text" not in payload:
                raise ResponseParseError(
                    "Whisper response has no 'text' field", stage=self.stage, raw=str(payload)[:200]
                )
            text = str(payload["text"] or "")

        text = text.strip()
        if not text:
            return TranscriptResult.silent("no speech recognised")
        # Whisper reports no confidence score
        return TranscriptResult(text=text)
