"""Text-to-Speech services.

Provides TTS capabilities for spoken replies:
- GoogleTTSService: Google Cloud Text-to-Speech (base64 MP3)
- OpenAITTSService: OpenAI speech endpoint (mp3/opus/aac/flac)
- ElevenLabsTTSService: ElevenLabs voices (MP3)
- HuggingFaceTTSService: Hugging Face inference models (WAV)
"""

from talkloop.services.tts.base import BaseTTSService
from talkloop.services.tts.elevenlabs import ElevenLabsTTSService
from talkloop.services.tts.google import GoogleTTSService
from talkloop.services.tts.huggingface import HuggingFaceTTSService
from talkloop.services.tts.openai import OpenAITTSService
from talkloop.services.tts.protocol import TTSService

__all__ = [
    # Services
    "BaseTTSService",
    "GoogleTTSService",
    "OpenAITTSService",
    "ElevenLabsTTSService",
    "HuggingFaceTTSService",
    # Protocol
    "TTSService",
]
