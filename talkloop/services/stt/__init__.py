"""Speech-to-Text services (Google Cloud Speech, OpenAI Whisper)."""

from talkloop.services.stt.base import BaseSTTService
from talkloop.services.stt.google import GoogleSTTService
from talkloop.services.stt.protocol import STTService, TranscriptResult
from talkloop.services.stt.whisper import WhisperSTTService

__all__ = [
    "BaseSTTService",
    "GoogleSTTService",
    "STTService",
    "TranscriptResult",
    "WhisperSTTService",
]
