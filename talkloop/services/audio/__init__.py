"""Audio codec, decoding and capture."""

from talkloop.services.audio.capture import CaptureDevice, SoundDeviceCapture
from talkloop.services.audio.codec import (
    SpeechSample,
    VoiceActivity,
    WavInfo,
    decode_wav,
    encode_wav,
    has_speech,
    voice_activity,
)
from talkloop.services.audio.decoder import AudioDecoder, DecodedAudio, MiniaudioDecoder
from talkloop.services.audio.resampler import AudioResampler

__all__ = [
    "AudioDecoder",
    "AudioResampler",
    "CaptureDevice",
    "DecodedAudio",
    "MiniaudioDecoder",
    "SoundDeviceCapture",
    "SpeechSample",
    "VoiceActivity",
    "WavInfo",
    "decode_wav",
    "encode_wav",
    "has_speech",
    "voice_activity",
]
