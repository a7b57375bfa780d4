"""PCM capture buffers, WAV encoding/decoding and voice-activity detection."""

from __future__ import annotations

import struct
from dataclasses import dataclass

import numpy as np

from talkloop.services.exceptions import AudioDecodeError

WAV_HEADER_SIZE = 44
PCM_FORMAT = 1
BITS_PER_SAMPLE = 16
INT16_SCALE = 32767

DEFAULT_VOLUME_THRESHOLD = 0.001
# Fraction of samples that must exceed the threshold to count as speech
MIN_VALID_RATIO = 0.01


@dataclass
class SpeechSample:
    """Interleaved float samples in [-1, 1] handed over by a capture device."""

    channels: int
    sample_rate: int
    pcm: np.ndarray

    def __post_init__(self) -> None:
        if self.channels < 1:
            raise ValueError("channels must be >= 1")
        if self.sample_rate <= 0:
            raise ValueError("sample_rate must be > 0")
        self.pcm = np.asarray(self.pcm, dtype=np.float32).reshape(-1)

    @property
    def num_samples(self) -> int:
        return int(self.pcm.size)

    @property
    def duration_seconds(self) -> float:
        return self.num_samples / (self.sample_rate * self.channels)

    @property
    def is_empty(self) -> bool:
        return self.pcm.size == 0


@dataclass(frozen=True)
class WavInfo:
    """Header fields and samples of a parsed WAV file."""

    channels: int
    sample_rate: int
    bits_per_sample: int
    num_samples: int
    pcm: np.ndarray


@dataclass(frozen=True)
class VoiceActivity:
    """Amplitude statistics used to gate transcription."""

    valid_ratio: float
    max_amplitude: float

    @property
    def has_speech(self) -> bool:
        return self.valid_ratio > MIN_VALID_RATIO


def quantize(pcm: np.ndarray) -> np.ndarray:
    """Float samples to int16: round(s * 32767), clipped to the int16 range."""
    scaled = np.rint(np.asarray(pcm, dtype=np.float64) * INT16_SCALE)
    return np.clip(scaled, -32768, 32767).astype("<i2")


def encode_wav(sample: SpeechSample) -> bytes:
    """Encode a capture buffer as a 16-bit PCM WAV file with a 44-byte header."""
    data = quantize(sample.pcm).tobytes()
    block_align = sample.channels * (BITS_PER_SAMPLE // 8)
    byte_rate = sample.sample_rate * block_align

    header = struct.pack(
        "<4sI4s4sIHHIIHH4sI",
        b"RIFF",
        36 + len(data),
        b"WAVE",
        b"fmt ",
        16,
        PCM_FORMAT,
        sample.channels,
        sample.sample_rate,
        byte_rate,
        block_align,
        BITS_PER_SAMPLE,
        b"data",
        len(data),
    )
    return header + data


def decode_wav(data: bytes) -> WavInfo:
    """Parse a PCM WAV file (8 or 16 bit) into float samples.

    Raises:
        AudioDecodeError: Not a RIFF/WAVE file, missing chunks or
            unsupported sample format.
    """
    if len(data) < 12 or data[:4] != b"RIFF" or data[8:12] != b"WAVE":
        raise AudioDecodeError("Not a RIFF/WAVE file", stage="audio")

    fmt: tuple[int, int, int, int] | None = None
    payload: bytes | None = None
    offset = 12
    while offset + 8 <= len(data):
        chunk_id = data[offset : offset + 4]
        (chunk_size,) = struct.unpack_from("<I", data, offset + 4)
        body = data[offset + 8 : offset + 8 + chunk_size]
        if chunk_id == b"fmt ":
            if len(body) < 16:
                raise AudioDecodeError("Truncated fmt chunk", stage="audio")
            audio_format, channels, sample_rate, _, _, bits = struct.unpack_from(
                "<HHIIHH", body
            )
            fmt = (audio_format, channels, sample_rate, bits)
        elif chunk_id == b"data":
            payload = body
            break
        # Chunks are word aligned
        offset += 8 + chunk_size + (chunk_size & 1)

    if fmt is None or payload is None:
        raise AudioDecodeError("WAV file is missing fmt or data chunk", stage="audio")

    audio_format, channels, sample_rate, bits = fmt
    if audio_format != PCM_FORMAT or channels < 1:
        raise AudioDecodeError(f"Unsupported WAV format tag {audio_format}", stage="audio")

    if bits == 16:
        usable = len(payload) - len(payload) % 2
        pcm = np.frombuffer(payload[:usable], dtype="<i2").astype(np.float32) / INT16_SCALE
    elif bits == 8:
        pcm = (np.frombuffer(payload, dtype=np.uint8).astype(np.float32) - 128.0) / 127.0
    else:
        raise AudioDecodeError(f"Unsupported bits per sample: {bits}", stage="audio")

    return WavInfo(
        channels=channels,
        sample_rate=sample_rate,
        bits_per_sample=bits,
        num_samples=int(pcm.size),
        pcm=pcm,
    )


def voice_activity(
    pcm: np.ndarray,
    threshold: float = DEFAULT_VOLUME_THRESHOLD,
) -> VoiceActivity:
    """Share of samples louder than ``threshold`` and the peak amplitude."""
    samples = np.abs(np.asarray(pcm, dtype=np.float32))
    if samples.size == 0:
        return VoiceActivity(valid_ratio=0.0, max_amplitude=0.0)
    valid = int(np.count_nonzero(samples > threshold))
    return VoiceActivity(
        valid_ratio=valid / samples.size,
        max_amplitude=float(samples.max()),
    )


def has_speech(pcm: np.ndarray, threshold: float = DEFAULT_VOLUME_THRESHOLD) -> bool:
    """Simple amplitude-based voice activity detection.

    Args:
        pcm: Float samples in [-1, 1]
        threshold: Amplitude a sample must exceed to count as voiced

    Returns:
        True if more than 1% of samples exceed the threshold
    """
    return voice_activity(pcm, threshold).has_speech
