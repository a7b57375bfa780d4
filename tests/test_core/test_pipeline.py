"""Tests for the InteractionOrchestrator."""

import asyncio

import httpx
import numpy as np
import pytest

from talkloop.core.history import ConversationHistory, Role
from talkloop.core.pipeline import (
    InteractionOrchestrator,
    PipelineConfig,
    PipelineMetrics,
    PipelineState,
    TurnResult,
)
from talkloop.services.audio.codec import SpeechSample
from talkloop.services.audio.decoder import DecodedAudio
from talkloop.services.exceptions import (
    ConfigurationError,
    TransientServiceError,
    VendorRejectionError,
)
from talkloop.services.stt import GoogleSTTService
from talkloop.services.stt.protocol import TranscriptResult


class FakeLLM:
    """LLM stand-in following the converse() contract."""

    def __init__(self, reply: str = "Hello there!", error: Exception | None = None) -> None:
        self.reply = reply
        self.error = error
        self.calls: list[str] = []
        self.gate: asyncio.Event | None = None
        self.closed = False

    async def converse(
        self, history: ConversationHistory, user_text: str, *, is_current=None
    ) -> str:
        self.calls.append(user_text)
        message = history.add_user(user_text)
        error = self.error
        if self.gate is not None:
            await self.gate.wait()
        stale = is_current is not None and not is_current()
        if stale:
            history.discard(message)
        if error is not None:
            raise error
        if not stale:
            history.add_assistant(self.reply)
        return self.reply

    async def close(self) -> None:
        self.closed = True


class FakeTTS:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.calls: list[str] = []
        self.closed = False

    async def synthesize(self, text: str) -> DecodedAudio:
        self.calls.append(text)
        if self.error is not None:
            raise self.error
        return DecodedAudio(samples=np.zeros(160, dtype=np.float32), sample_rate=16000)

    async def close(self) -> None:
        self.closed = True


class FakeSTT:
    def __init__(self, result: TranscriptResult | None = None) -> None:
        self.result = result or TranscriptResult(text="what time is it", confidence=0.9)
        self.error: Exception | None = None
        self.listening = False
        self.starts = 0
        self.aborts = 0
        self.closed = False

    @property
    def is_listening(self) -> bool:
        return self.listening

    async def start_capture(self) -> None:
        self.starts += 1
        self.listening = True

    async def stop_capture(self) -> TranscriptResult:
        self.listening = False
        if self.error is not None:
            raise self.error
        return self.result

    async def abort_capture(self) -> None:
        self.aborts += 1
        self.listening = False

    async def close(self) -> None:
        self.closed = True


class FakeMicrophone:
    """Capture device returning a fixed recording."""

    def __init__(self, sample: SpeechSample) -> None:
        self.sample = sample
        self.starts = 0
        self.is_active = False

    def start(self, device: str | None = None) -> None:
        self.starts += 1
        self.is_active = True

    def stop(self) -> SpeechSample:
        self.is_active = False
        return self.sample


class FakeSink:
    def __init__(self) -> None:
        self.played: list[DecodedAudio] = []

    async def play(self, audio: DecodedAudio) -> None:
        self.played.append(audio)


def make_orchestrator(**kwargs) -> InteractionOrchestrator:
    kwargs.setdefault("tts", FakeTTS())
    llm = kwargs.pop("llm", FakeLLM())
    return InteractionOrchestrator(
        llm, config=PipelineConfig(system_prompt="sys", max_turns=5), **kwargs
    )


class TestPipelineState:
    """Tests for PipelineState enum."""

    def test_states_exist(self) -> None:
        """Test all states are defined."""
        assert {s.name for s in PipelineState} == {
            "IDLE",
            "CAPTURING",
            "TRANSCRIBING",
            "GENERATING",
            "SYNTHESIZING",
        }


class TestPipelineConfig:
    """Tests for PipelineConfig dataclass."""

    def test_from_settings(self, settings_factory) -> None:
        """Test creating config from settings."""
        settings = settings_factory(system_prompt="Be kind.", max_turns=4)
        config = PipelineConfig.from_settings(settings)

        assert config.system_prompt == "Be kind."
        assert config.max_turns == 4


class TestPipelineMetrics:
    """Tests for PipelineMetrics dataclass."""

    def test_to_dict(self) -> None:
        """Test metrics to dictionary conversion."""
        metrics = PipelineMetrics()
        metrics.total_turns = 2
        metrics.llm_latencies_ms = [100.0, 300.0]

        result = metrics.to_dict()

        assert result["total_turns"] == 2
        assert result["avg_llm_latency_ms"] == 200.0
        assert result["avg_stt_latency_ms"] == 0.0
        assert result["duration_seconds"] >= 0


class TestTypedTurns:
    """Tests for submit_user_utterance."""

    @pytest.mark.asyncio
    async def test_full_turn(self) -> None:
        """Test IDLE → GENERATING → SYNTHESIZING → IDLE with playback."""
        sink = FakeSink()
        tts = FakeTTS()
        orchestrator = make_orchestrator(tts=tts, sink=sink)

        result = await orchestrator.submit_user_utterance("hello")

        assert isinstance(result, TurnResult)
        assert result.transcript == "hello"
        assert result.reply == "Hello there!"
        assert result.audio is not None
        assert result.no_speech is False
        assert tts.calls == ["Hello there!"]
        assert sink.played == [result.audio]
        assert orchestrator.state is PipelineState.IDLE
        assert orchestrator.metrics.total_turns == 1

    @pytest.mark.asyncio
    async def test_history_is_updated(self) -> None:
        """Test the LLM turn lands in the orchestrator's history."""
        orchestrator = make_orchestrator()
        await orchestrator.submit_user_utterance("hello")

        roles = [m.role for m in orchestrator.history.snapshot()]
        assert roles == [Role.SYSTEM, Role.USER, Role.ASSISTANT]

    @pytest.mark.asyncio
    async def test_without_tts(self) -> None:
        """Test text-only pipelines return the reply without audio."""
        orchestrator = make_orchestrator(tts=None)
        result = await orchestrator.submit_user_utterance("hello")

        assert result is not None
        assert result.reply == "Hello there!"
        assert result.audio is None

    @pytest.mark.asyncio
    async def test_blank_transcript_skips_llm(self) -> None:
        """Test whitespace-only input returns to IDLE without an LLM call."""
        llm = FakeLLM()
        orchestrator = make_orchestrator(llm=llm)

        result = await orchestrator.submit_user_utterance("   ")

        assert result is not None and result.no_speech is True
        assert llm.calls == []
        assert orchestrator.state is PipelineState.IDLE

    @pytest.mark.asyncio
    async def test_single_flight(self) -> None:
        """Test a second submission while generating is a no-op."""
        llm = FakeLLM()
        llm.gate = asyncio.Event()
        orchestrator = make_orchestrator(llm=llm)

        first = asyncio.create_task(orchestrator.submit_user_utterance("one"))
        await asyncio.sleep(0)
        assert orchestrator.state is PipelineState.GENERATING

        assert await orchestrator.submit_user_utterance("two") is None
        assert await orchestrator.begin_capture() is False

        llm.gate.set()
        result = await first

        assert result is not None and result.transcript == "one"
        assert llm.calls == ["one"]

    @pytest.mark.asyncio
    async def test_concurrent_submissions_start_one_traversal(self) -> None:
        """Test the guard holds for calls scheduled in the same loop tick."""
        llm = FakeLLM()
        llm.gate = asyncio.Event()
        orchestrator = make_orchestrator(llm=llm)

        tasks = [
            asyncio.create_task(orchestrator.submit_user_utterance("a")),
            asyncio.create_task(orchestrator.submit_user_utterance("b")),
        ]
        await asyncio.sleep(0)
        llm.gate.set()
        results = await asyncio.gather(*tasks)

        assert sum(r is not None for r in results) == 1
        assert llm.calls == ["a"]

    @pytest.mark.asyncio
    async def test_llm_error_resets_to_idle(self) -> None:
        """Test a stage error propagates and returns the pipeline to IDLE."""
        tts = FakeTTS()
        llm = FakeLLM(error=VendorRejectionError("bad model", stage="llm", status_code=400))
        orchestrator = make_orchestrator(llm=llm, tts=tts)

        with pytest.raises(VendorRejectionError):
            await orchestrator.submit_user_utterance("hello")

        assert orchestrator.state is PipelineState.IDLE
        assert tts.calls == []
        assert orchestrator.metrics.failed_turns == 1

        # The next turn is accepted
        llm.error = None
        assert await orchestrator.submit_user_utterance("again") is not None

    @pytest.mark.asyncio
    async def test_tts_error_resets_to_idle(self) -> None:
        """Test synthesis failures do not leave the pipeline stuck."""
        tts = FakeTTS(error=TransientServiceError("503", stage="tts"))
        orchestrator = make_orchestrator(tts=tts)

        with pytest.raises(TransientServiceError):
            await orchestrator.submit_user_utterance("hello")
        assert orchestrator.state is PipelineState.IDLE

    @pytest.mark.asyncio
    async def test_reset_discards_late_reply(self) -> None:
        """Test a reply arriving after reset() is not synthesized."""
        llm = FakeLLM()
        llm.gate = asyncio.Event()
        tts = FakeTTS()
        orchestrator = make_orchestrator(llm=llm, tts=tts)

        task = asyncio.create_task(orchestrator.submit_user_utterance("hello"))
        await asyncio.sleep(0)
        stale_generation = orchestrator.generation

        await orchestrator.reset()
        assert orchestrator.state is PipelineState.IDLE
        assert orchestrator.generation > stale_generation

        llm.gate.set()
        assert await task is None
        assert tts.calls == []
        assert orchestrator.metrics.discarded_turns == 1

    @pytest.mark.asyncio
    async def test_late_reply_is_not_recorded(self) -> None:
        """Test an abandoned turn leaves no trace in the history."""
        llm = FakeLLM(reply="OLD")
        llm.gate = asyncio.Event()
        orchestrator = make_orchestrator(llm=llm, tts=None)

        task = asyncio.create_task(orchestrator.submit_user_utterance("first"))
        await asyncio.sleep(0)
        await orchestrator.reset()
        llm.gate.set()
        assert await task is None

        llm.gate = None
        llm.reply = "NEW"
        result = await orchestrator.submit_user_utterance("second")

        assert result is not None and result.reply == "NEW"
        assert [m.content for m in orchestrator.history] == ["sys", "second", "NEW"]

    @pytest.mark.asyncio
    async def test_new_turn_after_reset_is_not_disturbed(self) -> None:
        """Test an abandoned turn's late failure does not reset the new turn."""
        slow = FakeLLM(error=TransientServiceError("late failure", stage="llm"))
        slow.gate = asyncio.Event()
        orchestrator = make_orchestrator(llm=slow, tts=None)

        stale = asyncio.create_task(orchestrator.submit_user_utterance("first"))
        await asyncio.sleep(0)
        await orchestrator.reset()

        slow.error = None
        fresh = asyncio.create_task(orchestrator.submit_user_utterance("second"))
        await asyncio.sleep(0)
        assert orchestrator.state is PipelineState.GENERATING

        slow.gate.set()
        result = await fresh
        with pytest.raises(TransientServiceError, match="late failure"):
            await stale

        assert result is not None and result.transcript == "second"
        assert orchestrator.state is PipelineState.IDLE

    @pytest.mark.asyncio
    async def test_generations_increase(self) -> None:
        """Test each traversal gets a new generation number."""
        orchestrator = make_orchestrator()
        first = await orchestrator.submit_user_utterance("a")
        second = await orchestrator.submit_user_utterance("b")

        assert first is not None and second is not None
        assert second.generation > first.generation


class TestVoiceTurns:
    """Tests for begin_capture / end_capture."""

    @pytest.mark.asyncio
    async def test_full_voice_turn(self) -> None:
        """Test CAPTURING → TRANSCRIBING → GENERATING → SYNTHESIZING → IDLE."""
        stt = FakeSTT()
        llm = FakeLLM()
        orchestrator = make_orchestrator(stt=stt, llm=llm)

        assert await orchestrator.begin_capture() is True
        assert orchestrator.state is PipelineState.CAPTURING

        result = await orchestrator.end_capture()

        assert result is not None
        assert result.transcript == "what time is it"
        assert llm.calls == ["what time is it"]
        assert orchestrator.state is PipelineState.IDLE

    @pytest.mark.asyncio
    async def test_second_begin_capture_is_noop(self) -> None:
        """Test begin_capture while capturing returns False."""
        stt = FakeSTT()
        orchestrator = make_orchestrator(stt=stt)

        assert await orchestrator.begin_capture() is True
        assert await orchestrator.begin_capture() is False
        assert stt.starts == 1

    @pytest.mark.asyncio
    async def test_end_capture_when_idle_is_noop(self) -> None:
        """Test end_capture outside CAPTURING does nothing."""
        orchestrator = make_orchestrator(stt=FakeSTT())
        assert await orchestrator.end_capture() is None
        assert orchestrator.state is PipelineState.IDLE

    @pytest.mark.asyncio
    async def test_no_speech_skips_llm(self) -> None:
        """Test an empty STT result returns to IDLE without an LLM call."""
        stt = FakeSTT(TranscriptResult.silent("no speech detected"))
        llm = FakeLLM()
        orchestrator = make_orchestrator(stt=stt, llm=llm)

        await orchestrator.begin_capture()
        result = await orchestrator.end_capture()

        assert result is not None and result.no_speech is True
        assert llm.calls == []
        assert orchestrator.state is PipelineState.IDLE
        assert orchestrator.metrics.no_speech_turns == 1

    @pytest.mark.asyncio
    async def test_stt_error_resets_to_idle(self) -> None:
        """Test a transcription failure propagates and resets."""
        stt = FakeSTT()
        stt.error = TransientServiceError("down", stage="stt")
        orchestrator = make_orchestrator(stt=stt)

        await orchestrator.begin_capture()
        with pytest.raises(TransientServiceError):
            await orchestrator.end_capture()
        assert orchestrator.state is PipelineState.IDLE

    @pytest.mark.asyncio
    async def test_begin_capture_without_stt(self) -> None:
        """Test voice turns need a speech-to-text service."""
        orchestrator = make_orchestrator()
        with pytest.raises(ConfigurationError):
            await orchestrator.begin_capture()
        assert orchestrator.state is PipelineState.IDLE

    @pytest.mark.asyncio
    async def test_end_capture_without_stt(self) -> None:
        """Test a capture left without a speech-to-text service raises ConfigurationError."""
        orchestrator = make_orchestrator(stt=FakeSTT())
        await orchestrator.begin_capture()
        orchestrator._stt = None

        with pytest.raises(ConfigurationError):
            await orchestrator.end_capture()

    @pytest.mark.asyncio
    async def test_reset_while_settling_frees_the_microphone(
        self, settings_factory, speech_sample, mock_http
    ) -> None:
        """Test reset() during the settle delay lets the next capture run normally."""
        settings = settings_factory(google_stt={"settle_delay": 0.5})
        client, _ = mock_http(
            httpx.Response(200, json={"results": [{"alternatives": [{"transcript": "hi"}]}]})
        )
        gate = asyncio.Event()

        async def gated_sleep(seconds: float) -> None:
            await gate.wait()

        microphone = FakeMicrophone(speech_sample)
        stt = GoogleSTTService(settings.google_stt, microphone, client=client, sleep=gated_sleep)
        orchestrator = make_orchestrator(stt=stt, tts=None)

        assert await orchestrator.begin_capture() is True
        settling = asyncio.create_task(orchestrator.end_capture())
        await asyncio.sleep(0)
        assert orchestrator.state is PipelineState.TRANSCRIBING

        await orchestrator.reset()
        assert stt.is_listening is False
        assert await orchestrator.begin_capture() is True
        assert microphone.starts == 2
        assert orchestrator.state is PipelineState.CAPTURING

        gate.set()
        assert await settling is None
        assert microphone.is_active is True
        assert orchestrator.state is PipelineState.CAPTURING

        result = await orchestrator.end_capture()
        assert result is not None and result.transcript == "hi"
        assert orchestrator.state is PipelineState.IDLE

    @pytest.mark.asyncio
    async def test_reset_while_capturing_aborts_capture(self) -> None:
        """Test reset() releases the microphone."""
        stt = FakeSTT()
        orchestrator = make_orchestrator(stt=stt)

        await orchestrator.begin_capture()
        await orchestrator.reset()

        assert stt.aborts == 1
        assert orchestrator.state is PipelineState.IDLE
        assert await orchestrator.end_capture() is None


class TestLifecycle:
    """Tests for open/close."""

    @pytest.mark.asyncio
    async def test_close_closes_services(self) -> None:
        """Test close() releases every provider once."""
        stt, llm, tts = FakeSTT(), FakeLLM(), FakeTTS()
        orchestrator = make_orchestrator(stt=stt, llm=llm, tts=tts)

        async with orchestrator:
            await orchestrator.submit_user_utterance("hi")

        assert stt.closed and llm.closed and tts.closed
        await orchestrator.close()

    @pytest.mark.asyncio
    async def test_closed_orchestrator_ignores_turns(self) -> None:
        """Test entry points are no-ops after close()."""
        llm = FakeLLM()
        orchestrator = make_orchestrator(llm=llm)
        await orchestrator.close()

        assert await orchestrator.submit_user_utterance("hi") is None
        assert llm.calls == []

    @pytest.mark.asyncio
    async def test_close_discards_in_flight_turn(self) -> None:
        """Test a reply arriving after close() is dropped."""
        llm = FakeLLM()
        llm.gate = asyncio.Event()
        tts = FakeTTS()
        orchestrator = make_orchestrator(llm=llm, tts=tts)

        task = asyncio.create_task(orchestrator.submit_user_utterance("hi"))
        await asyncio.sleep(0)
        await orchestrator.close()
        llm.gate.set()

        assert await task is None
        assert tts.calls == []
