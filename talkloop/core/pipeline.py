"""Conversation pipeline orchestrator.

Sequences one conversational turn:
- Capture → STT → LLM → TTS → playback sink
- Typed input enters directly at the LLM stage
- At most one turn in flight; late results from abandoned turns are dropped
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum, auto
from typing import Any, Protocol

from talkloop.config import Settings, get_settings
from talkloop.core.history import ConversationHistory
from talkloop.logging_config import get_logger, truncate_for_log
from talkloop.observability.metrics import record_turn
from talkloop.services.audio.decoder import DecodedAudio
from talkloop.services.exceptions import ConfigurationError
from talkloop.services.llm.protocol import LLMService
from talkloop.services.stt.protocol import STTService
from talkloop.services.tts.protocol import TTSService

logger: Any = get_logger(__name__)


class PipelineState(Enum):
    """State machine for the conversation pipeline."""

    IDLE = auto()  # Ready for the next turn
    CAPTURING = auto()  # Microphone open
    TRANSCRIBING = auto()  # STT request in flight
    GENERATING = auto()  # LLM request in flight
    SYNTHESIZING = auto()  # TTS request or playback in flight


class AudioSink(Protocol):
    """Protocol for playing synthesized replies."""

    async def play(self, audio: DecodedAudio) -> None:
        """Play decoded audio. Returns when playback has been handed off."""
        ...


@dataclass(frozen=True)
class TurnResult:
    """Outcome of one pipeline traversal."""

    transcript: str = ""
    reply: str = ""
    audio: DecodedAudio | None = None
    no_speech: bool = False
    generation: int = 0


@dataclass
class PipelineConfig:
    """Configuration for the conversation pipeline."""

    system_prompt: str = ""
    max_turns: int = 10

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> PipelineConfig:
        """Create config from application settings."""
        s = settings or get_settings()
        return cls(system_prompt=s.system_prompt, max_turns=s.max_turns)


@dataclass
class PipelineMetrics:
    """Metrics collected across turns."""

    total_turns: int = 0
    no_speech_turns: int = 0
    failed_turns: int = 0
    discarded_turns: int = 0

    # Latency tracking
    stt_latencies_ms: list[float] = field(default_factory=list)
    llm_latencies_ms: list[float] = field(default_factory=list)
    tts_latencies_ms: list[float] = field(default_factory=list)

    pipeline_start: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        duration = (datetime.now(UTC) - self.pipeline_start).total_seconds()
        return {
            "total_turns": self.total_turns,
            "no_speech_turns": self.no_speech_turns,
            "failed_turns": self.failed_turns,
            "discarded_turns": self.discarded_turns,
            "duration_seconds": duration,
            "avg_stt_latency_ms": self._avg(self.stt_latencies_ms),
            "avg_llm_latency_ms": self._avg(self.llm_latencies_ms),
            "avg_tts_latency_ms": self._avg(self.tts_latencies_ms),
        }

    def _avg(self, values: list[float]) -> float:
        return sum(values) / len(values) if values else 0.0


@dataclass
class _Traversal:
    """Bookkeeping for the turn currently in flight."""

    generation: int
    transcript: str = ""
    stt_ms: float | None = None
    llm_ms: float | None = None
    tts_ms: float | None = None


class InteractionOrchestrator:
    """Runs STT → LLM → TTS turns with a single-flight guard.

    State changes happen synchronously before the first await of every
    entry point, so a second call made while a turn is running sees a
    non-IDLE state and is ignored. Every turn carries a generation
    number; ``reset()`` and ``close()`` bump it, and any stage result
    belonging to an older generation is discarded.

    Errors from any stage return the pipeline to IDLE and propagate to
    the awaiting caller.
    """

    def __init__(
        self,
        llm: LLMService,
        *,
        stt: STTService | None = None,
        tts: TTSService | None = None,
        sink: AudioSink | None = None,
        history: ConversationHistory | None = None,
        config: PipelineConfig | None = None,
    ) -> None:
        self._config = config or PipelineConfig()
        self._llm = llm
        self._stt = stt
        self._tts = tts
        self._sink = sink
        self._history = history or ConversationHistory(
            self._config.system_prompt, max_turns=self._config.max_turns
        )
        self._metrics = PipelineMetrics()

        self._state = PipelineState.IDLE
        self._generation = 0
        self._current: _Traversal | None = None
        self._opened = False
        self._closed = False

    @property
    def state(self) -> PipelineState:
        """Current pipeline state."""
        return self._state

    @property
    def generation(self) -> int:
        """Generation number of the newest traversal."""
        return self._generation

    @property
    def history(self) -> ConversationHistory:
        return self._history

    @property
    def metrics(self) -> PipelineMetrics:
        """Pipeline metrics."""
        return self._metrics

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> None:
        """Acquire provider connections. Idempotent."""
        if self._closed:
            raise RuntimeError("Orchestrator is closed")
        if self._opened:
            return
        for service in (self._stt, self._llm, self._tts):
            opener = getattr(service, "open", None)
            if opener is not None:
                await opener()
        self._opened = True
        logger.debug("Pipeline opened")

    async def close(self) -> None:
        """Abandon any turn in flight and release every provider. Idempotent."""
        if self._closed:
            return
        await self.reset()
        self._closed = True
        for service in (self._stt, self._llm, self._tts):
            if service is not None:
                await service.close()
        logger.info(f"Pipeline closed: {self._metrics.to_dict()}")

    async def __aenter__(self) -> InteractionOrchestrator:
        await self.open()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def reset(self) -> None:
        """Abandon the turn in flight; its late results will be discarded."""
        previous = self._state
        self._generation += 1
        self._current = None
        self._set_state(PipelineState.IDLE)

        # The microphone may still be open during the post-capture settle delay
        if self._stt is not None and self._stt.is_listening:
            await self._stt.abort_capture()
        if previous is not PipelineState.IDLE:
            logger.info(f"Pipeline reset from {previous.name}")

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def submit_user_utterance(self, transcript: str) -> TurnResult | None:
        """Run a typed turn: LLM → TTS.

        Returns None (and does nothing) unless the pipeline is IDLE.
        """
        if not self._accepts_new_turn("submit_user_utterance"):
            return None

        traversal = self._begin_traversal(PipelineState.GENERATING)
        return await self._respond(traversal, transcript)

    async def begin_capture(self) -> bool:
        """Open the microphone. Returns False (no-op) unless IDLE."""
        if not self._accepts_new_turn("begin_capture"):
            return False
        if self._stt is None:
            raise ConfigurationError("No speech-to-text service configured", stage="stt")

        traversal = self._begin_traversal(PipelineState.CAPTURING)
        try:
            await self._stt.start_capture()
        except Exception:
            self._fail(traversal, "stt")
            raise
        return True

    async def end_capture(self) -> TurnResult | None:
        """Stop capturing and run the rest of the turn.

        Returns None (and does nothing) unless CAPTURING.
        """
        if self._state is not PipelineState.CAPTURING or self._current is None:
            logger.debug(f"end_capture ignored in state {self._state.name}")
            return None
        if self._stt is None:
            raise ConfigurationError("No speech-to-text service configured", stage="stt")

        traversal = self._current
        self._set_state(PipelineState.TRANSCRIBING)

        start = time.perf_counter()
        try:
            result = await self._stt.stop_capture()
        except Exception:
            self._fail(traversal, "stt")
            raise
        traversal.stt_ms = (time.perf_counter() - start) * 1000

        if self._is_stale(traversal):
            return self._discard(traversal, "stt")

        if result.no_speech:
            return self._finish_no_speech(traversal, result.reason)

        self._set_state(PipelineState.GENERATING)
        return await self._respond(traversal, result.text)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _respond(self, traversal: _Traversal, transcript: str) -> TurnResult | None:
        if not transcript or not transcript.strip():
            return self._finish_no_speech(traversal, "empty transcript")

        traversal.transcript = transcript.strip()
        logger.info(f"User: {truncate_for_log(traversal.transcript)}")

        start = time.perf_counter()
        try:
            reply = await self._llm.converse(
                self._history,
                traversal.transcript,
                is_current=lambda: not self._is_stale(traversal),
            )
        except Exception:
            self._fail(traversal, "llm")
            raise
        traversal.llm_ms = (time.perf_counter() - start) * 1000

        if self._is_stale(traversal):
            return self._discard(traversal, "llm")

        logger.info(f"Assistant: {truncate_for_log(reply)}")
        if self._tts is None or not reply.strip():
            return self._finish(traversal, reply, None)

        self._set_state(PipelineState.SYNTHESIZING)
        start = time.perf_counter()
        try:
            audio = await self._tts.synthesize(reply)
            traversal.tts_ms = (time.perf_counter() - start) * 1000
            if self._is_stale(traversal):
                return self._discard(traversal, "tts")
            if self._sink is not None:
                await self._sink.play(audio)
        except Exception:
            self._fail(traversal, "tts")
            raise

        if self._is_stale(traversal):
            return self._discard(traversal, "playback")
        return self._finish(traversal, reply, audio)

    # ------------------------------------------------------------------
    # State helpers
    # ------------------------------------------------------------------

    def _set_state(self, new_state: PipelineState) -> None:
        old_state = self._state
        self._state = new_state
        if old_state is not new_state:
            logger.debug(f"Pipeline state: {old_state.name} → {new_state.name}")

    def _accepts_new_turn(self, caller: str) -> bool:
        if self._closed:
            logger.warning(f"{caller} ignored: pipeline is closed")
            return False
        if self._state is not PipelineState.IDLE:
            logger.warning(f"{caller} ignored: turn already in progress ({self._state.name})")
            return False
        return True

    def _begin_traversal(self, state: PipelineState) -> _Traversal:
        self._generation += 1
        self._current = _Traversal(generation=self._generation)
        self._set_state(state)
        return self._current

    def _is_stale(self, traversal: _Traversal) -> bool:
        return self._closed or traversal.generation != self._generation

    def _discard(self, traversal: _Traversal, stage: str) -> None:
        logger.info(f"Discarding {stage} result of abandoned turn {traversal.generation}")
        self._metrics.discarded_turns += 1
        record_turn("discarded")
        return None

    def _fail(self, traversal: _Traversal, stage: str) -> None:
        if self._is_stale(traversal):
            return
        logger.error(f"Turn {traversal.generation} failed at {stage}")
        self._metrics.failed_turns += 1
        record_turn("error")
        self._current = None
        self._set_state(PipelineState.IDLE)

    def _finish_no_speech(self, traversal: _Traversal, reason: str | None) -> TurnResult:
        logger.info(f"No speech: {reason or 'unknown'}")
        self._metrics.no_speech_turns += 1
        record_turn("no_speech", stt_latency_ms=traversal.stt_ms)
        self._current = None
        self._set_state(PipelineState.IDLE)
        return TurnResult(no_speech=True, generation=traversal.generation)

    def _finish(
        self, traversal: _Traversal, reply: str, audio: DecodedAudio | None
    ) -> TurnResult:
        self._metrics.total_turns += 1
        for values, value in (
            (self._metrics.stt_latencies_ms, traversal.stt_ms),
            (self._metrics.llm_latencies_ms, traversal.llm_ms),
            (self._metrics.tts_latencies_ms, traversal.tts_ms),
        ):
            if value is not None:
                values.append(value)
        record_turn(
            "completed",
            stt_latency_ms=traversal.stt_ms,
            llm_latency_ms=traversal.llm_ms,
            tts_latency_ms=traversal.tts_ms,
        )
        self._current = None
        self._set_state(PipelineState.IDLE)
        return TurnResult(
            transcript=traversal.transcript,
            reply=reply,
            audio=audio,
            generation=traversal.generation,
        )

    def get_metrics(self) -> dict[str, Any]:
        """Get current metrics."""
        return self._metrics.to_dict()
