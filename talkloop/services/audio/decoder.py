"""Decoding of compressed TTS replies into playable float samples.

miniaudio covers mp3, flac, wav and ogg/vorbis without native
dependencies. Formats it cannot read (aac, opus) go through pydub,
which needs ffmpeg on the PATH and is installed with the ``aac`` extra.
"""

from __future__ import annotations

import asyncio
import io
from dataclasses import dataclass, field
from typing import Any, Protocol

import miniaudio
import numpy as np

from talkloop.logging_config import get_logger
from talkloop.services.audio.resampler import AudioResampler
from talkloop.services.exceptions import AudioDecodeError, InputValidationError

logger: Any = get_logger(__name__)

MINIAUDIO_FORMATS = frozenset({"mp3", "flac", "wav", "ogg"})
FFMPEG_FORMATS = frozenset({"aac", "opus"})
SUPPORTED_FORMATS = MINIAUDIO_FORMATS | FFMPEG_FORMATS


@dataclass
class DecodedAudio:
    """Playable audio: interleaved float32 samples plus their layout.

    Owned by whoever holds it last (usually the response cache); call
    ``release()`` when it is no longer needed.
    """

    samples: np.ndarray
    sample_rate: int
    channels: int = 1
    source_format: str = "wav"
    released: bool = field(default=False, init=False)

    @property
    def num_frames(self) -> int:
        return int(self.samples.size // max(self.channels, 1))

    @property
    def duration_seconds(self) -> float:
        return self.num_frames / self.sample_rate if self.sample_rate else 0.0

    def release(self) -> None:
        """Drop the sample buffer. Safe to call more than once."""
        self.samples = np.empty(0, dtype=np.float32)
        self.released = True


class AudioDecoder(Protocol):
    """Protocol for compressed-audio decoders."""

    async def decode(self, data: bytes, fmt: str) -> DecodedAudio:
        """Decode ``data`` encoded as ``fmt`` (mp3, ogg, opus, flac, aac, wav)."""
        ...


def normalize_format(fmt: str) -> str:
    """Map a response format or MIME subtype onto a decoder key."""
    fmt = fmt.lower().strip().lstrip(".")
    if "/" in fmt:
        fmt = fmt.split("/", 1)[1]
    aliases = {"mpeg": "mp3", "x-wav": "wav", "wave": "wav", "vorbis": "ogg", "x-flac": "flac"}
    return aliases.get(fmt, fmt)


def _decode_miniaudio(data: bytes) -> tuple[np.ndarray, int, int]:
    decoded = miniaudio.decode(data, output_format=miniaudio.SampleFormat.FLOAT32)
    samples = np.asarray(decoded.samples, dtype=np.float32)
    return samples, decoded.sample_rate, decoded.nchannels


def _decode_ffmpeg(data: bytes, fmt: str) -> tuple[np.ndarray, int, int]:
    # pydub ships with the optional "aac" extra
    from pydub import AudioSegment

    container = "ogg" if fmt == "opus" else fmt
    segment = AudioSegment.from_file(io.BytesIO(data), format=container)
    scale = float(1 << (8 * segment.sample_width - 1))
    samples = np.array(segment.get_array_of_samples(), dtype=np.float32) / scale
    return samples, segment.frame_rate, segment.channels


class MiniaudioDecoder:
    """Default decoder: miniaudio for common formats, pydub/ffmpeg for the rest."""

    def __init__(self, playback_sample_rate: int | None = None) -> None:
        self._playback_sample_rate = playback_sample_rate

    async def decode(self, data: bytes, fmt: str) -> DecodedAudio:
        """Decode in a worker thread and optionally resample for playback.

        Raises:
            InputValidationError: Unknown format
            AudioDecodeError: Empty or corrupt audio
        """
        key = normalize_format(fmt)
        if key not in SUPPORTED_FORMATS:
            raise InputValidationError(f"Unsupported audio format: {fmt}", stage="audio")
        if not data:
            raise AudioDecodeError("Received empty audio", stage="audio")

        try:
            samples, rate, channels = await asyncio.to_thread(self._decode_sync, data, key)
        except ImportError as e:
            raise AudioDecodeError(
                f"Decoding {key} needs pydub and ffmpeg (install talkloop[aac]): {e}",
                stage="audio",
            ) from e
        except Exception as e:
            logger.debug(f"{key} decode failed: {e}")
            raise AudioDecodeError(f"Failed to decode {key} audio: {e}", stage="audio") from e

        if samples.size == 0:
            raise AudioDecodeError(f"Decoded {key} audio has no samples", stage="audio")

        if self._playback_sample_rate and self._playback_sample_rate != rate:
            resampler = AudioResampler(rate, self._playback_sample_rate)
            samples = await resampler.resample(samples, channels)
            rate = self._playback_sample_rate

        return DecodedAudio(
            samples=samples,
            sample_rate=rate,
            channels=channels,
            source_format=key,
        )

    def _decode_sync(self, data: bytes, key: str) -> tuple[np.ndarray, int, int]:
        if key in MINIAUDIO_FORMATS:
            return _decode_miniaudio(data)
        return _decode_ffmpeg(data, key)
