"""Cache, retry and decode flow shared by the TTS backends."""

from __future__ import annotations

import time
from typing import Any

import httpx

from talkloop.config import ProviderSettings
from talkloop.core.cache import ResponseCache
from talkloop.core.retry import RequestExecutor, executor_from_settings
from talkloop.logging_config import get_logger, truncate_for_log
from talkloop.services.audio.decoder import AudioDecoder, DecodedAudio, MiniaudioDecoder
from talkloop.services.exceptions import (
    ConfigurationError,
    InputValidationError,
    ResponseParseError,
)
from talkloop.services.http import HTTPProvider

logger: Any = get_logger(__name__)


class BaseTTSService(HTTPProvider):
    """Fetches compressed audio over HTTP and decodes it for playback.

    Subclasses implement ``_fetch(text) -> (audio_bytes, format)``.
    Decoded replies are cached by ``cache_key(text)`` when caching is on.
    """

    stage = "tts"
    provider = "tts"

    def __init__(
        self,
        settings: ProviderSettings,
        *,
        decoder: AudioDecoder | None = None,
        executor: RequestExecutor | None = None,
        client: httpx.AsyncClient | None = None,
        cache: ResponseCache[DecodedAudio] | None = None,
    ) -> None:
        super().__init__(client=client)
        self._settings = settings
        self._decoder = decoder or MiniaudioDecoder()
        self._executor = executor or executor_from_settings(
            settings, stage=self.stage, provider=self.provider
        )
        if cache is None and settings.enable_cache:
            cache = ResponseCache(max_size=settings.max_cache_size)
        self._cache = cache

    @property
    def cache(self) -> ResponseCache[DecodedAudio] | None:
        return self._cache

    def _api_key(self) -> str:
        key = self._settings.api_key
        if key is None or not key.get_secret_value():
            raise ConfigurationError(f"{self.provider} API key is not configured", stage=self.stage)
        return key.get_secret_value()

    def check_configuration(self) -> None:
        """Raise ConfigurationError before any network call."""
        self._api_key()

    def cache_key(self, text: str) -> str:
        return f"{self._settings.model or ''}|{text}"

    async def synthesize(self, text: str) -> DecodedAudio:
        if not text or not text.strip():
            raise InputValidationError("Text to synthesize is empty", stage=self.stage)
        self.check_configuration()

        key = self.cache_key(text)
        if self._cache is not None:
            cached = self._cache.get(key)
            if cached is not None:
                logger.debug(f"{self.provider} cache hit: {truncate_for_log(text)}")
                return cached

        start = time.perf_counter()
        data, fmt = await self._executor.run(lambda: self._fetch(text))
        if not data:
            raise ResponseParseError("No audio received", stage=self.stage)

        audio = await self._decoder.decode(data, fmt)
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info(
            f"{self.provider} synthesized {audio.duration_seconds:.2f}s of {fmt} "
            f"({len(data)} bytes, {elapsed_ms:.0f}ms)"
        )

        if self._cache is not None:
            self._cache.put(key, audio)
        return audio

    async def _fetch(self, text: str) -> tuple[bytes, str]:
        raise NotImplementedError

    async def close(self) -> None:
        if self._cache is not None:
            self._cache.close()
        await super().close()
