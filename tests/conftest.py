"""Shared pytest fixtures for talkloop tests."""

from __future__ import annotations

import math
from collections.abc import Callable
from typing import Any

import httpx
import numpy as np
import pytest

from talkloop.config import Settings
from talkloop.services.audio.codec import SpeechSample

PROVIDER_FIELDS = (
    "google_stt",
    "whisper",
    "openai",
    "mistral",
    "gemini",
    "ollama",
    "google_tts",
    "openai_tts",
    "elevenlabs",
    "huggingface",
)


def build_settings(**overrides: Any) -> Settings:
    """Create a Settings object with safe test defaults.

    Every provider gets a fake API key and no retry backoff. Dict
    overrides for a provider are merged into its defaults.
    """
    base: dict[str, Any] = {
        name: {"api_key": f"test-{name}-key", "retry_base_delay": 0.0}
        for name in PROVIDER_FIELDS
    }
    base["google_stt"]["settle_delay"] = 0.0
    base["whisper"]["settle_delay"] = 0.0
    base["system_prompt"] = "You are a test assistant."

    for key, value in overrides.items():
        if key in PROVIDER_FIELDS and isinstance(value, dict):
            base[key] = {**base[key], **value}
        else:
            base[key] = value
    return Settings(_env_file=None, **base)


@pytest.fixture
def settings_factory() -> Callable[..., Settings]:
    """Return a factory to build Settings with overrides."""
    return build_settings


@pytest.fixture
def settings(settings_factory: Callable[..., Settings]) -> Settings:
    """Default Settings fixture."""
    return settings_factory()


# =============================================================================
# Audio Fixtures
# =============================================================================


def generate_sine_wave(
    frequency: float,
    duration_seconds: float,
    sample_rate: int,
    amplitude: float = 0.5,
) -> np.ndarray:
    """Generate a sine wave as float32 samples in [-1, 1]."""
    num_samples = int(duration_seconds * sample_rate)
    t = np.linspace(0, duration_seconds, num_samples, endpoint=False)
    return (amplitude * np.sin(2 * math.pi * frequency * t)).astype(np.float32)


def sparse_sample(total: int, loud: int, amplitude: float = 0.5) -> SpeechSample:
    """A silent mono buffer with exactly ``loud`` samples above any small threshold."""
    pcm = np.zeros(total, dtype=np.float32)
    pcm[:loud] = amplitude
    return SpeechSample(channels=1, sample_rate=16000, pcm=pcm)


@pytest.fixture
def sine_wave() -> Callable[..., np.ndarray]:
    """Return the sine wave generator."""
    return generate_sine_wave


@pytest.fixture
def make_sparse_sample() -> Callable[..., SpeechSample]:
    """Return a factory for buffers with a given number of voiced samples."""
    return sparse_sample


@pytest.fixture
def speech_sample() -> SpeechSample:
    """Half a second of 440Hz tone at 16kHz."""
    return SpeechSample(
        channels=1,
        sample_rate=16000,
        pcm=generate_sine_wave(440.0, 0.5, 16000),
    )


@pytest.fixture
def silent_sample() -> SpeechSample:
    """1000 samples where only 0.5% exceed the volume threshold."""
    return sparse_sample(1000, 5)


# =============================================================================
# HTTP Fixtures
# =============================================================================


class RecordingTransport:
    """Replays canned responses and records every request it receives.

    Each item is an ``httpx.Response``, an exception to raise, or a
    callable taking the request. The last item repeats once exhausted.
    """

    def __init__(self, *items: Any) -> None:
        self._items = list(items)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        item = self._items.pop(0) if len(self._items) > 1 else self._items[0]
        if isinstance(item, BaseException):
            raise item
        if callable(item):
            return item(request)
        # Fresh copy so a repeated response can be read again
        return httpx.Response(item.status_code, headers=item.headers, content=item.content)

    @property
    def count(self) -> int:
        return len(self.requests)


@pytest.fixture
def mock_http() -> Callable[..., tuple[httpx.AsyncClient, RecordingTransport]]:
    """Return a factory building an AsyncClient backed by canned responses."""

    def factory(*items: Any) -> tuple[httpx.AsyncClient, RecordingTransport]:
        recorder = RecordingTransport(*items)
        client = httpx.AsyncClient(transport=httpx.MockTransport(recorder))
        return client, recorder

    return factory
