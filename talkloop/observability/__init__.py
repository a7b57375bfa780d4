"""Observability module for metrics."""

from talkloop.observability.metrics import (
    PROVIDER_ATTEMPTS,
    STAGE_LATENCY,
    TTS_CACHE,
    TTS_CACHE_SIZE,
    TURN_TOTAL,
    get_content_type,
    get_metrics,
    record_cache_lookup,
    record_turn,
)

__all__ = [
    "TURN_TOTAL",
    "PROVIDER_ATTEMPTS",
    "TTS_CACHE",
    "TTS_CACHE_SIZE",
    "STAGE_LATENCY",
    "get_content_type",
    "get_metrics",
    "record_cache_lookup",
    "record_turn",
]
