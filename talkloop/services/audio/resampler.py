"""Audio resampling utilities using soxr."""

from __future__ import annotations

import asyncio
from typing import Any

import numpy as np
import soxr

from talkloop.logging_config import get_logger
from talkloop.services.exceptions import AudioDecodeError

logger: Any = get_logger(__name__)


class AudioResampler:
    """High-quality audio resampler using soxr.

    Converts decoded replies to the playback device rate, e.g.
    ElevenLabs 44100Hz → 48000Hz or Google 24000Hz → 44100Hz.
    """

    def __init__(
        self,
        source_rate: int,
        target_rate: int,
        quality: str = "HQ",  # VHQ, HQ, MQ, LQ, QQ
    ) -> None:
        self._source_rate = source_rate
        self._target_rate = target_rate
        self._quality = quality

    @property
    def ratio(self) -> float:
        """Resampling ratio (target/source)."""
        return self._target_rate / self._source_rate

    @property
    def needs_resampling(self) -> bool:
        """Check if resampling is actually needed."""
        return self._source_rate != self._target_rate

    async def resample(self, samples: np.ndarray, channels: int = 1) -> np.ndarray:
        """Resample interleaved float samples asynchronously."""
        if not self.needs_resampling or samples.size == 0:
            return samples

        # CPU-bound, keep it off the event loop
        return await asyncio.to_thread(self.resample_sync, samples, channels)

    def resample_sync(self, samples: np.ndarray, channels: int = 1) -> np.ndarray:
        """Synchronous resample of interleaved float32 samples.

        Raises:
            AudioDecodeError: soxr rejected the input
        """
        if not self.needs_resampling or samples.size == 0:
            return samples

        frames = np.asarray(samples, dtype=np.float32).reshape(-1, channels)
        try:
            resampled = soxr.resample(
                frames,
                self._source_rate,
                self._target_rate,
                quality=self._quality,
            )
        except Exception as e:
            logger.error(f"Resampling failed: {e}")
            raise AudioDecodeError(f"Failed to resample audio: {e}", stage="audio") from e

        return np.clip(resampled, -1.0, 1.0).astype(np.float32).reshape(-1)
