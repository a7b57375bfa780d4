"""Application configuration using Pydantic Settings.

All configuration is loaded from environment variables (prefix ``TALKLOOP_``).
Nested provider settings use ``__`` as delimiter, e.g.
``TALKLOOP_MISTRAL__API_KEY`` or ``TALKLOOP_ELEVENLABS__VOICE_ID``.
"""

from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SYSTEM_PROMPT = (
    "You are a friendly virtual assistant with broad knowledge and good "
    "communication skills. Answer in a natural, warm tone and keep replies "
    "short and clear - they will be spoken aloud."
)


class ProviderSettings(BaseModel):
    """Options recognised by every provider adapter."""

    api_key: SecretStr | None = Field(default=None, description="Vendor API key")
    endpoint: str | None = Field(default=None, description="Override the vendor endpoint URL")
    model: str | None = Field(default=None, description="Vendor model name")
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(default=150, gt=0)
    request_timeout: float = Field(default=30.0, gt=0, description="Seconds per attempt")
    max_retries: int = Field(default=3, ge=1, description="Total attempts per request")
    retry_base_delay: float = Field(default=1.0, ge=0, description="Backoff base in seconds")
    enable_cache: bool = Field(default=True, description="Cache synthesized audio (TTS only)")
    max_cache_size: int = Field(default=50, ge=1)


# =============================================================================
# Speech-to-Text
# =============================================================================
class GoogleSTTSettings(ProviderSettings):
    language_code: str = "zh-TW"
    enable_word_time_offsets: bool = False
    settle_delay: float = Field(default=0.5, ge=0)


class WhisperSettings(ProviderSettings):
    model: str | None = "whisper-1"
    temperature: float = Field(default=0.0, ge=0.0, le=1.0)
    language: str | None = "zh"
    response_format: Literal["json", "text"] = "json"
    settle_delay: float = Field(default=0.2, ge=0)


# =============================================================================
# Language models
# =============================================================================
class OpenAIChatSettings(ProviderSettings):
    model: str | None = "gpt-4"
    top_p: float = Field(default=1.0, ge=0.0, le=1.0)
    presence_penalty: float = Field(default=0.0, ge=-2.0, le=2.0)
    frequency_penalty: float = Field(default=0.0, ge=-2.0, le=2.0)


class MistralSettings(OpenAIChatSettings):
    model: str | None = "mistral-small-latest"
    safe_prompt: bool = False


class GeminiSettings(ProviderSettings):
    model: str | None = "gemini-2.0-flash"
    max_tokens: int = Field(default=30, gt=0)
    top_p: float = Field(default=0.95, ge=0.0, le=1.0)
    top_k: int = Field(default=40, ge=1)


class OllamaSettings(ProviderSettings):
    model: str | None = "llama3"
    top_p: float = Field(default=0.9, ge=0.0, le=1.0)
    top_k: int = Field(default=40, ge=1)


# =============================================================================
# Text-to-Speech
# =============================================================================
class GoogleTTSSettings(ProviderSettings):
    language_code: str = "cmn-TW"
    voice_name: str | None = "cmn-TW-Wavenet-A"
    speaking_rate: float = Field(default=1.0, ge=0.25, le=4.0)
    pitch: float = Field(default=0.0, ge=-20.0, le=20.0)


class OpenAITTSSettings(ProviderSettings):
    model: str | None = "gpt-4o-mini-tts"
    voice: str = "alloy"
    speed: float = Field(default=1.0, ge=0.25, le=4.0)
    response_format: Literal["mp3", "opus", "aac", "flac"] = "mp3"
    request_timeout: float = Field(default=10.0, gt=0)


class ElevenLabsSettings(ProviderSettings):
    voice_id: str | None = "JBFqnCBsd6RMkjVDRZzb"
    model: str | None = "eleven_flash_v2_5"
    stability: float = Field(default=0.5, ge=0.0, le=1.0)
    similarity_boost: float = Field(default=0.5, ge=0.0, le=1.0)
    style: float = Field(default=0.0, ge=0.0, le=1.0)
    use_speaker_boost: bool = True


class HuggingFaceTTSSettings(ProviderSettings):
    model: str | None = "espnet/kan-bayashi_ljspeech_vits"
    enable_cache: bool = False


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="TALKLOOP_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
    )

    # ==========================================================================
    # Provider selection
    # ==========================================================================
    stt_provider: Literal["google", "whisper"] = Field(
        default="google", description="Speech-to-text backend"
    )
    llm_provider: Literal["openai", "mistral", "gemini", "ollama"] = Field(
        default="mistral", description="Language model backend"
    )
    tts_provider: Literal["google", "openai", "elevenlabs", "huggingface"] = Field(
        default="elevenlabs", description="Text-to-speech backend"
    )

    # ==========================================================================
    # Provider settings
    # ==========================================================================
    google_stt: GoogleSTTSettings = Field(default_factory=GoogleSTTSettings)
    whisper: WhisperSettings = Field(default_factory=WhisperSettings)
    openai: OpenAIChatSettings = Field(default_factory=OpenAIChatSettings)
    mistral: MistralSettings = Field(default_factory=MistralSettings)
    gemini: GeminiSettings = Field(default_factory=GeminiSettings)
    ollama: OllamaSettings = Field(default_factory=OllamaSettings)
    google_tts: GoogleTTSSettings = Field(default_factory=GoogleTTSSettings)
    openai_tts: OpenAITTSSettings = Field(default_factory=OpenAITTSSettings)
    elevenlabs: ElevenLabsSettings = Field(default_factory=ElevenLabsSettings)
    huggingface: HuggingFaceTTSSettings = Field(default_factory=HuggingFaceTTSSettings)

    # ==========================================================================
    # Conversation
    # ==========================================================================
    system_prompt: str = Field(default=DEFAULT_SYSTEM_PROMPT)
    max_turns: int = Field(
        default=10, ge=1, description="User/assistant pairs kept besides the system prompt"
    )
    rollback_on_failure: bool = Field(
        default=False,
        description="Remove the user turn from history when the LLM call fails",
    )

    # ==========================================================================
    # Audio
    # ==========================================================================
    volume_threshold: float = Field(
        default=0.001, gt=0.0, le=0.1, description="Amplitude gate for voice activity"
    )
    playback_sample_rate: int | None = Field(
        default=None, description="Resample decoded replies to this rate (None keeps source)"
    )
    input_device: str | None = Field(default=None, description="Capture device name")

    # ==========================================================================
    # Application
    # ==========================================================================
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", description="Logging level"
    )
    log_dir: str = Field(default="logs", description="Directory for rotated log files")
    log_to_file: bool = Field(default=False, description="Enable file logging")
    environment: Literal["development", "staging", "production"] = Field(
        default="development", description="Deployment environment"
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
