"""Microphone capture collaborators.

The pipeline only needs a device that can start recording and hand back
one ``SpeechSample`` when stopped. ``SoundDeviceCapture`` implements it
with sounddevice (``mic`` extra); tests use in-memory fakes.
"""

from __future__ import annotations

import threading
from typing import Any, Protocol

import numpy as np

from talkloop.logging_config import get_logger
from talkloop.services.audio.codec import SpeechSample
from talkloop.services.exceptions import CaptureBusyError, CaptureError

logger: Any = get_logger(__name__)

DEFAULT_CAPTURE_RATE = 16000
# Upper bound on one utterance, matches a 60 s recording buffer
MAX_CAPTURE_SECONDS = 60


class CaptureDevice(Protocol):
    """Protocol for capture devices."""

    @property
    def is_active(self) -> bool:
        """True while recording."""
        ...

    def start(self, device: str | None = None) -> None:
        """Begin recording. Raises CaptureBusyError if already recording."""
        ...

    def stop(self) -> SpeechSample:
        """Stop recording and return everything captured since start()."""
        ...


class SoundDeviceCapture:
    """Records float32 samples from a PortAudio input stream."""

    def __init__(
        self,
        sample_rate: int = DEFAULT_CAPTURE_RATE,
        channels: int = 1,
        max_seconds: int = MAX_CAPTURE_SECONDS,
    ) -> None:
        self.sample_rate = sample_rate
        self.channels = channels
        self.max_seconds = max_seconds
        self._stream: Any = None
        self._chunks: list[np.ndarray] = []
        self._frames = 0
        self._lock = threading.Lock()

    @property
    def is_active(self) -> bool:
        return self._stream is not None

    def start(self, device: str | None = None) -> None:
        """Open the input stream on ``device`` (default input when None)."""
        with self._lock:
            if self._stream is not None:
                raise CaptureBusyError("Capture device is already recording")
            self._chunks = []
            self._frames = 0

        try:
            import sounddevice as sd
        except ImportError as e:
            raise CaptureError("sounddevice is not installed (install talkloop[mic])") from e
        except OSError as e:
            raise CaptureError(f"PortAudio is not available: {e}") from e

        stream = None
        try:
            stream = sd.InputStream(
                samplerate=self.sample_rate,
                channels=self.channels,
                dtype="float32",
                device=device,
                callback=self._on_audio,
            )
            stream.start()
        except Exception as e:
            if stream is not None:
                try:
                    stream.close()
                except Exception as close_error:
                    logger.warning(f"Failed to close input stream: {close_error}")
            raise CaptureError(f"Failed to open input device {device or 'default'}: {e}") from e

        with self._lock:
            self._stream = stream
        logger.debug(f"Capture started: {self.sample_rate}Hz x{self.channels}")

    def stop(self) -> SpeechSample:
        """Close the stream and return the captured samples."""
        with self._lock:
            stream, self._stream = self._stream, None
            chunks, self._chunks = self._chunks, []

        if stream is None:
            raise CaptureError("Capture device is not recording")

        try:
            stream.stop()
            stream.close()
        except Exception as e:
            raise CaptureError(f"Failed to close input device: {e}") from e

        pcm = np.concatenate(chunks).reshape(-1) if chunks else np.empty(0, dtype=np.float32)
        sample = SpeechSample(channels=self.channels, sample_rate=self.sample_rate, pcm=pcm)
        logger.debug(f"Capture stopped: {sample.duration_seconds:.2f}s")
        return sample

    def _on_audio(self, indata: np.ndarray, frames: int, time: Any, status: Any) -> None:
        if status:
            logger.warning(f"Capture status: {status}")
        with self._lock:
            if self._frames >= self.max_seconds * self.sample_rate:
                return
            self._chunks.append(indata.copy())
            self._frames += frames
