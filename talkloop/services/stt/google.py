"""Google Cloud Speech-to-Text (REST recognize) backend."""

from __future__ import annotations

import base64
from typing import Any

from talkloop.config import GoogleSTTSettings
from talkloop.services.audio.codec import SpeechSample
from talkloop.services.exceptions import ResponseParseError
from talkloop.services.http import parse_json
from talkloop.services.stt.base import BaseSTTService
from talkloop.services.stt.protocol import TranscriptResult

GOOGLE_STT_ENDPOINT = "https://speech.googleapis.com/v1/speech:recognize"


class GoogleSTTService(BaseSTTService):
    """Sends the whole recording as base64 LINEAR16 WAV."""

    provider = "google"
    _settings: GoogleSTTSettings

    def build_request(self, wav: bytes, sample: SpeechSample) -> dict[str, Any]:
        return {
            "config": {
                "encoding": "LINEAR16",
                "sampleRateHertz": sample.sample_rate,
                "languageCode": self._settings.language_code,
                "enableWordTimeOffsets": self._settings.enable_word_time_offsets,
            },
            "audio": {"content": base64.b64encode(wav).decode("ascii")},
        }

    async def _transcribe(self, wav: bytes, sample: SpeechSample) -> TranscriptResult:
        response = await self._send(
            "POST",
            self._settings.endpoint or GOOGLE_STT_ENDPOINT,
            json_body=self.build_request(wav, sample),
            params={"key": self._api_key()},
        )
        return self.parse_response(parse_json(response, stage=self.stage))

    def parse_response(self, payload: Any) -> TranscriptResult:
        """Join the best alternative of every result.

        No ``results`` at all means Google heard nothing.
        """
        if not isinstance(payload, dict):
            raise ResponseParseError("Expected a JSON object", stage=self.stage, raw=str(payload))

        results = payload.get("results") or []
        if not results:
            return TranscriptResult.silent("no speech recognised")

        texts: list[str] = []
        confidence = 0.0
        for index, result in enumerate(results):
            alternatives = result.get("alternatives") if isinstance(result, dict) else None
            if not alternatives or not isinstance(alternatives, list):
                raise ResponseParseError(
                    "Recognition result has no alternatives", stage=self.stage, raw=str(result)
                )
            best = alternatives[0]
            if not isinstance(best, dict):
                raise ResponseParseError(
                    "Recognition alternative is not an object", stage=self.stage, raw=str(best)
                )
            texts.append(str(best.get("transcript", "")))
            if index == 0:
                try:
                    confidence = float(best.get("confidence", 0.0))
                except (TypeError, ValueError) as e:
                    raise ResponseParseError(
                        "Recognition confidence is not a number", stage=self.stage, raw=str(best)
                    ) from e

        text = "".join(texts).strip()
        if not text:
            return TranscriptResult.silent("no speech recognised")
        return TranscriptResult(text=text, confidence=confidence)
