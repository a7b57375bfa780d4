"""Tests for microphone capture and speaker playback.

PortAudio is replaced by an in-memory stream so no device is needed.
"""

import sys
import types

import numpy as np
import pytest

from talkloop.services.audio.capture import SoundDeviceCapture
from talkloop.services.audio.decoder import DecodedAudio
from talkloop.services.audio.playback import SoundDevicePlayer
from talkloop.services.exceptions import CaptureBusyError, CaptureError


class FakeInputStream:
    """Feeds two blocks to the callback when started."""

    instances: list["FakeInputStream"] = []

    def __init__(self, *, samplerate, channels, dtype, device, callback) -> None:
        self.samplerate = samplerate
        self.channels = channels
        self.device = device
        self.callback = callback
        self.closed = False
        FakeInputStream.instances.append(self)

    def start(self) -> None:
        block = np.full((160, self.channels), 0.25, dtype=np.float32)
        self.callback(block, 160, None, None)
        self.callback(block, 160, None, None)

    def stop(self) -> None:
        pass

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_sounddevice(monkeypatch: pytest.MonkeyPatch) -> types.ModuleType:
    module = types.ModuleType("sounddevice")
    module.InputStream = FakeInputStream
    module.played = []
    module.play = lambda frames, samplerate, device: module.played.append((frames, samplerate))
    module.wait = lambda: None
    FakeInputStream.instances = []
    monkeypatch.setitem(sys.modules, "sounddevice", module)
    return module


class TestSoundDeviceCapture:
    """Tests for SoundDeviceCapture."""

    def test_collects_blocks(self, fake_sounddevice) -> None:
        """Test every callback block ends up in the sample."""
        capture = SoundDeviceCapture(sample_rate=16000)
        capture.start("USB Mic")

        assert capture.is_active is True
        assert FakeInputStream.instances[0].device == "USB Mic"

        sample = capture.stop()
        assert capture.is_active is False
        assert FakeInputStream.instances[0].closed is True
        assert sample.sample_rate == 16000
        assert sample.num_samples == 320
        assert np.allclose(sample.pcm, 0.25)

    def test_busy(self, fake_sounddevice) -> None:
        """Test a second start while recording raises CaptureBusyError."""
        capture = SoundDeviceCapture()
        capture.start()
        with pytest.raises(CaptureBusyError):
            capture.start()
        capture.stop()

    def test_stop_without_start(self, fake_sounddevice) -> None:
        """Test stop() on an idle device raises CaptureError."""
        with pytest.raises(CaptureError):
            SoundDeviceCapture().stop()

    def test_caps_recording_length(self, fake_sounddevice) -> None:
        """Test blocks past max_seconds are dropped."""
        capture = SoundDeviceCapture(sample_rate=160, max_seconds=1)
        capture.start()
        assert capture.stop().num_samples == 160

    def test_device_failure(self, fake_sounddevice) -> None:
        """Test a PortAudio error becomes CaptureError."""

        def broken(**kwargs):
            raise RuntimeError("no such device")

        fake_sounddevice.InputStream = broken
        capture = SoundDeviceCapture()
        with pytest.raises(CaptureError, match="no such device"):
            capture.start("missing")
        assert capture.is_active is False

    def test_start_failure_closes_stream(self, fake_sounddevice) -> None:
        """Test a stream that fails to start is closed and the device stays free."""

        class StuckInputStream(FakeInputStream):
            def start(self) -> None:
                raise RuntimeError("device busy")

        fake_sounddevice.InputStream = StuckInputStream
        capture = SoundDeviceCapture()
        with pytest.raises(CaptureError, match="device busy"):
            capture.start()

        assert FakeInputStream.instances[0].closed is True
        assert capture.is_active is False

        fake_sounddevice.InputStream = FakeInputStream
        capture.start()
        assert capture.is_active is True
        capture.stop()


class TestSoundDevicePlayer:
    """Tests for SoundDevicePlayer."""

    @pytest.mark.asyncio
    async def test_plays_frames(self, fake_sounddevice) -> None:
        """Test samples are handed to PortAudio as (frames, channels)."""
        audio = DecodedAudio(samples=np.zeros(200, dtype=np.float32), sample_rate=24000, channels=2)
        await SoundDevicePlayer().play(audio)

        frames, rate = fake_sounddevice.played[0]
        assert frames.shape == (100, 2)
        assert rate == 24000

    @pytest.mark.asyncio
    async def test_released_audio_skipped(self, fake_sounddevice) -> None:
        """Test released clips are not played."""
        audio = DecodedAudio(samples=np.zeros(10, dtype=np.float32), sample_rate=8000)
        audio.release()
        await SoundDevicePlayer().play(audio)
        assert fake_sounddevice.played == []
