"""Prometheus metrics for the talkloop conversation pipeline.

Provides metrics for turn outcomes, provider retries, cache efficiency
and per-stage latency.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram, generate_latest
from prometheus_client.exposition import CONTENT_TYPE_LATEST

# =============================================================================
# Counters
# =============================================================================

TURN_TOTAL = Counter(
    "talkloop_turn_total",
    "Total conversation turns by outcome",
    ["outcome"],
)

PROVIDER_ATTEMPTS = Counter(
    "talkloop_provider_attempts_total",
    "Provider request attempts by result (success, retryable, terminal)",
    ["stage", "provider", "result"],
)

TTS_CACHE = Counter(
    "talkloop_tts_cache_total",
    "TTS response cache lookups",
    ["result"],
)

# =============================================================================
# Gauges
# =============================================================================

TTS_CACHE_SIZE = Gauge(
    "talkloop_tts_cache_entries",
    "Decoded replies currently held by the TTS cache",
)

# =============================================================================
# Histograms
# =============================================================================

STAGE_LATENCY = Histogram(
    "talkloop_stage_latency_seconds",
    "Latency of one pipeline stage",
    ["stage"],
    buckets=[0.1, 0.25, 0.5, 0.75, 1.0, 1.5, 2.0, 3.0, 5.0, 10.0],
)

# =============================================================================
# Helper Functions
# =============================================================================


def record_turn(
    outcome: str,
    *,
    stt_latency_ms: float | None = None,
    llm_latency_ms: float | None = None,
    tts_latency_ms: float | None = None,
) -> None:
    """Record metrics for a finished turn.

    Args:
        outcome: Turn outcome (completed, no_speech, error, discarded)
        stt_latency_ms: Transcription latency in milliseconds
        llm_latency_ms: Reply generation latency in milliseconds
        tts_latency_ms: Synthesis latency in milliseconds
    """
    TURN_TOTAL.labels(outcome=outcome).inc()

    # Latencies are observed in seconds
    for stage, value in (
        ("stt", stt_latency_ms),
        ("llm", llm_latency_ms),
        ("tts", tts_latency_ms),
    ):
        if value is not None and value > 0:
            STAGE_LATENCY.labels(stage=stage).observe(value / 1000)


def record_cache_lookup(hit: bool) -> None:
    """Record a TTS cache hit or miss."""
    TTS_CACHE.labels(result="hit" if hit else "miss").inc()


def get_metrics() -> bytes:
    """Generate Prometheus metrics output.

    Returns:
        Metrics in Prometheus text exposition format.
    """
    return generate_latest()


def get_content_type() -> str:
    """Get the content type for Prometheus metrics.

    Returns:
        Content-Type header value for Prometheus metrics.
    """
    return CONTENT_TYPE_LATEST
