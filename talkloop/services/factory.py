"""Build configured providers and orchestrators from Settings."""

from __future__ import annotations

from typing import Any

import httpx

from talkloop.config import Settings, get_settings
from talkloop.core.history import ConversationHistory
from talkloop.core.pipeline import AudioSink, InteractionOrchestrator, PipelineConfig
from talkloop.logging_config import get_logger
from talkloop.services.audio.capture import CaptureDevice
from talkloop.services.audio.decoder import AudioDecoder, MiniaudioDecoder
from talkloop.services.exceptions import ConfigurationError
from talkloop.services.llm.base import BaseChatService
from talkloop.services.llm.gemini import GeminiChatService
from talkloop.services.llm.mistral import MistralChatService
from talkloop.services.llm.ollama import OllamaChatService
from talkloop.services.llm.openai import OpenAIChatService
from talkloop.services.stt.base import BaseSTTService
from talkloop.services.stt.google import GoogleSTTService
from talkloop.services.stt.whisper import WhisperSTTService
from talkloop.services.tts.base import BaseTTSService
from talkloop.services.tts.elevenlabs import ElevenLabsTTSService
from talkloop.services.tts.google import GoogleTTSService
from talkloop.services.tts.huggingface import HuggingFaceTTSService
from talkloop.services.tts.openai import OpenAITTSService

logger: Any = get_logger(__name__)

# provider name -> (service class, Settings attribute holding its options)
STT_PROVIDERS: dict[str, tuple[type[BaseSTTService], str]] = {
    "google": (GoogleSTTService, "google_stt"),
    "whisper": (WhisperSTTService, "whisper"),
}

LLM_PROVIDERS: dict[str, tuple[type[BaseChatService], str]] = {
    "openai": (OpenAIChatService, "openai"),
    "mistral": (MistralChatService, "mistral"),
    "gemini": (GeminiChatService, "gemini"),
    "ollama": (OllamaChatService, "ollama"),
}

TTS_PROVIDERS: dict[str, tuple[type[BaseTTSService], str]] = {
    "google": (GoogleTTSService, "google_tts"),
    "openai": (OpenAITTSService, "openai_tts"),
    "elevenlabs": (ElevenLabsTTSService, "elevenlabs"),
    "huggingface": (HuggingFaceTTSService, "huggingface"),
}


def _lookup(registry: dict[str, Any], name: str, stage: str) -> Any:
    try:
        return registry[name]
    except KeyError:
        known = ", ".join(sorted(registry))
        raise ConfigurationError(
            f"Unknown {stage} provider '{name}' (expected one of: {known})", stage=stage
        ) from None


def create_stt_service(
    capture: CaptureDevice,
    settings: Settings | None = None,
    *,
    provider: str | None = None,
    client: httpx.AsyncClient | None = None,
) -> BaseSTTService:
    s = settings or get_settings()
    name = provider or s.stt_provider
    cls, attr = _lookup(STT_PROVIDERS, name, "stt")
    logger.debug(f"STT provider: {name}")
    return cls(
        getattr(s, attr),
        capture,
        client=client,
        volume_threshold=s.volume_threshold,
        input_device=s.input_device,
    )


def create_llm_service(
    settings: Settings | None = None,
    *,
    provider: str | None = None,
    client: httpx.AsyncClient | None = None,
) -> BaseChatService:
    s = settings or get_settings()
    name = provider or s.llm_provider
    cls, attr = _lookup(LLM_PROVIDERS, name, "llm")
    logger.debug(f"LLM provider: {name}")
    return cls(getattr(s, attr), client=client, rollback_on_failure=s.rollback_on_failure)


def create_tts_service(
    settings: Settings | None = None,
    *,
    provider: str | None = None,
    decoder: AudioDecoder | None = None,
    client: httpx.AsyncClient | None = None,
) -> BaseTTSService:
    s = settings or get_settings()
    name = provider or s.tts_provider
    cls, attr = _lookup(TTS_PROVIDERS, name, "tts")
    logger.debug(f"TTS provider: {name}")
    return cls(
        getattr(s, attr),
        decoder=decoder or MiniaudioDecoder(playback_sample_rate=s.playback_sample_rate),
        client=client,
    )


def create_orchestrator(
    settings: Settings | None = None,
    *,
    capture: CaptureDevice | None = None,
    sink: AudioSink | None = None,
    client: httpx.AsyncClient | None = None,
    enable_tts: bool = True,
) -> InteractionOrchestrator:
    """Wire the configured STT, LLM and TTS providers into one orchestrator.

    STT is only created when a capture device is given.
    """
    s = settings or get_settings()
    config = PipelineConfig.from_settings(s)
    return InteractionOrchestrator(
        create_llm_service(s, client=client),
        stt=create_stt_service(capture, s, client=client) if capture is not None else None,
        tts=create_tts_service(s, client=client) if enable_tts else None,
        sink=sink,
        history=ConversationHistory(config.system_prompt, max_turns=config.max_turns),
        config=config,
    )
