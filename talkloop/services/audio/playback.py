"""Speaker output for synthesized replies (sounddevice, ``mic`` extra)."""

from __future__ import annotations

import asyncio
from typing import Any

from talkloop.logging_config import get_logger
from talkloop.services.audio.decoder import DecodedAudio
from talkloop.services.exceptions import ServiceError

logger: Any = get_logger(__name__)


class SoundDevicePlayer:
    """Plays decoded audio on the default output device and waits for it."""

    def __init__(self, device: str | None = None) -> None:
        self._device = device

    async def play(self, audio: DecodedAudio) -> None:
        if audio.released or audio.samples.size == 0:
            logger.warning("Nothing to play")
            return
        await asyncio.to_thread(self._play_sync, audio)

    def _play_sync(self, audio: DecodedAudio) -> None:
        try:
            import sounddevice as sd
        except ImportError as e:
            raise ServiceError(
                "sounddevice is not installed (install talkloop[mic])", stage="tts"
            ) from e

        frames = audio.samples.reshape(-1, audio.channels)
        sd.play(frames, samplerate=audio.sample_rate, device=self._device)
        sd.wait()
