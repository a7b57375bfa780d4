"""Core conversation pipeline components.

This module provides the orchestration for conversational turns:
- InteractionOrchestrator: Sequences STT → LLM → TTS with a single-flight guard
- ConversationHistory: Bounded message log with a pinned system prompt
- RequestExecutor: Timeout, retry and backoff around provider calls
- ResponseCache: Bounded cache of decoded TTS replies
"""

from talkloop.core.cache import ResponseCache
from talkloop.core.history import ConversationHistory, ConversationMessage, Role
from talkloop.core.pipeline import (
    AudioSink,
    InteractionOrchestrator,
    PipelineConfig,
    PipelineMetrics,
    PipelineState,
    TurnResult,
)
from talkloop.core.retry import RequestExecutor, RetryPolicy, default_is_retryable

__all__ = [
    # Pipeline
    "InteractionOrchestrator",
    "PipelineState",
    "PipelineConfig",
    "PipelineMetrics",
    "TurnResult",
    "AudioSink",
    # Conversation
    "ConversationHistory",
    "ConversationMessage",
    "Role",
    # Provider plumbing
    "RequestExecutor",
    "RetryPolicy",
    "default_is_retryable",
    "ResponseCache",
]
