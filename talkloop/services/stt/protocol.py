"""STT (Speech-to-Text) service protocol and data types."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Protocol


@dataclass(frozen=True, slots=True)
class TranscriptResult:
    """Outcome of one capture-and-transcribe round.

    ``no_speech`` is set instead of raising when the recording was silent
    or the vendor recognised nothing; ``reason`` says which.
    """

    text: str = ""
    confidence: float = 0.0
    no_speech: bool = False
    reason: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def silent(cls, reason: str) -> TranscriptResult:
        return cls(no_speech=True, reason=reason)


class STTService(Protocol):
    """Protocol for STT (Speech-to-Text) service implementations."""

    @property
    def is_listening(self) -> bool:
        """True between start_capture() and stop_capture()."""
        ...

    async def start_capture(self) -> None:
        """Start recording. A no-op while already listening.

        Raises:
            ConfigurationError: API key missing
            CaptureError: Device could not be opened
        """
        ...

    async def stop_capture(self) -> TranscriptResult:
        """Stop recording and transcribe what was captured.

        Returns:
            TranscriptResult, with ``no_speech`` set for silent recordings
            or when abort_capture() ran during the settle delay
        """
        ...

    async def abort_capture(self) -> None:
        """Stop recording and discard the samples. A no-op when idle."""
        ...

    async def close(self) -> None:
        """Close any open connections and clean up resources."""
        ...
