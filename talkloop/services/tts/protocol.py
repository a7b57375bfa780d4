"""TTS (Text-to-Speech) service protocol."""

from __future__ import annotations

from typing import Protocol

from talkloop.services.audio.decoder import DecodedAudio


class TTSService(Protocol):
    """Protocol for TTS (Text-to-Speech) service implementations."""

    async def synthesize(self, text: str) -> DecodedAudio:
        """Synthesize text to playable audio, consulting the cache first.

        Args:
            text: Reply text to speak

        Returns:
            Decoded audio ready for a playback sink

        Raises:
            InputValidationError: Empty text
            ConfigurationError: API key or voice missing
            ServiceError: The call or decoding failed
        """
        ...

    async def close(self) -> None:
        """Release cached audio and close connections."""
        ...
