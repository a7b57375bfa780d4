"""Capture, gating and retry flow shared by the STT backends."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from talkloop.config import ProviderSettings
from talkloop.core.retry import RequestExecutor, executor_from_settings
from talkloop.logging_config import get_logger, truncate_for_log
from talkloop.services.audio.capture import CaptureDevice
from talkloop.services.audio.codec import (
    DEFAULT_VOLUME_THRESHOLD,
    SpeechSample,
    encode_wav,
    voice_activity,
)
from talkloop.services.exceptions import CaptureError, ConfigurationError
from talkloop.services.http import HTTPProvider
from talkloop.services.stt.protocol import TranscriptResult

logger: Any = get_logger(__name__)


class BaseSTTService(HTTPProvider):
    """Records through a capture device and transcribes with one HTTP call.

    Subclasses implement ``_transcribe(wav, sample)`` for their vendor.
    Silent or empty recordings never reach the network.
    """

    stage = "stt"
    provider = "stt"
    requires_api_key = True

    def __init__(
        self,
        settings: ProviderSettings,
        capture: CaptureDevice,
        *,
        executor: RequestExecutor | None = None,
        client: httpx.AsyncClient | None = None,
        volume_threshold: float = DEFAULT_VOLUME_THRESHOLD,
        input_device: str | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        super().__init__(client=client)
        self._settings = settings
        self._capture = capture
        self._executor = executor or executor_from_settings(
            settings, stage=self.stage, provider=self.provider
        )
        self._volume_threshold = volume_threshold
        self._input_device = input_device
        self._sleep = sleep
        self._listening = False
        # Bumped by every start and abort so a settling stop can tell it was superseded
        self._session = 0

    @property
    def is_listening(self) -> bool:
        return self._listening

    @property
    def settle_delay(self) -> float:
        """Seconds to keep recording after stop is requested."""
        return float(getattr(self._settings, "settle_delay", 0.0))

    def _api_key(self) -> str:
        key = self._settings.api_key
        if key is None or not key.get_secret_value():
            raise ConfigurationError(f"{self.provider} API key is not configured", stage=self.stage)
        return key.get_secret_value()

    async def start_capture(self) -> None:
        if self._listening:
            logger.debug(f"{self.provider} already listening, ignoring start")
            return
        if self.requires_api_key:
            self._api_key()

        self._capture.start(self._input_device)
        self._session += 1
        self._listening = True
        logger.info(f"{self.provider} listening")

    async def stop_capture(self) -> TranscriptResult:
        if not self._listening:
            raise CaptureError("stop_capture() called while not listening")
        session = self._session

        # Let the tail of the utterance reach the buffer
        if self.settle_delay > 0:
            await self._sleep(self.settle_delay)
        if session != self._session or not self._listening:
            # Aborted while settling; a newer capture may own the device
            logger.info(f"{self.provider} capture {session} aborted before stop")
            return TranscriptResult.silent("capture aborted")

        try:
            sample = self._capture.stop()
        finally:
            self._listening = False

        return await self.transcribe(sample)

    async def transcribe(self, sample: SpeechSample) -> TranscriptResult:
        """Gate, encode and transcribe one recording."""
        if sample.is_empty:
            logger.info("Recording is empty")
            return TranscriptResult.silent("empty recording")

        activity = voice_activity(sample.pcm, self._volume_threshold)
        if not activity.has_speech:
            logger.info(
                f"No speech detected (valid ratio {activity.valid_ratio:.4f}, "
                f"peak {activity.max_amplitude:.4f})"
            )
            return TranscriptResult.silent("no speech detected")

        if self.requires_api_key:
            self._api_key()

        wav = encode_wav(sample)
        start = time.perf_counter()
        result = await self._executor.run(lambda: self._transcribe(wav, sample))
        elapsed_ms = (time.perf_counter() - start) * 1000

        if result.no_speech:
            logger.info(f"{self.provider} recognised nothing ({elapsed_ms:.0f}ms)")
        else:
            logger.info(
                f"{self.provider} transcript ({elapsed_ms:.0f}ms): "
                f"{truncate_for_log(result.text)}"
            )
        return result

    async def _transcribe(self, wav: bytes, sample: SpeechSample) -> TranscriptResult:
        raise NotImplementedError

    async def abort_capture(self) -> None:
        if not self._listening:
            return
        self._listening = False
        self._session += 1
        if self._capture.is_active:
            try:
                self._capture.stop()
            except CaptureError as e:
                logger.warning(f"Failed to stop capture: {e}")
        logger.info(f"{self.provider} capture aborted")

    async def close(self) -> None:
        await self.abort_capture()
        await super().close()
