"""Hugging Face inference API backend (text-to-speech models)."""

from __future__ import annotations

from talkloop.config import HuggingFaceTTSSettings
from talkloop.services.tts.base import BaseTTSService

HUGGINGFACE_ENDPOINT_TEMPLATE = "https://api-inference.huggingface.co/models/{model}"


class HuggingFaceTTSService(BaseTTSService):
    """Returns WAV bytes from the model's inference endpoint."""

    provider = "huggingface"
    _settings: HuggingFaceTTSSettings

    async def _fetch(self, text: str) -> tuple[bytes, str]:
        url = self._settings.endpoint or HUGGINGFACE_ENDPOINT_TEMPLATE.format(
            model=self._settings.model
        )
        response = await self._send(
            "POST",
            url,
            json_body={"inputs": text},
            headers={"Authorization": f"Bearer {self._api_key()}"},
        )
        return response.content, "wav"
