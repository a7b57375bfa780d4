"""LLM service protocol."""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol

from talkloop.core.history import ConversationHistory


class LLMService(Protocol):
    """Protocol for LLM service implementations."""

    async def converse(
        self,
        history: ConversationHistory,
        user_text: str,
        *,
        is_current: Callable[[], bool] | None = None,
    ) -> str:
        """Append ``user_text``, ask the model, append and return its reply.

        The history is the only conversational state; the caller owns it
        and hands it in on every call. When ``is_current`` returns False
        once the reply arrives, the turn was abandoned: its user message
        is removed and the reply is returned without being recorded.

        Raises:
            ConfigurationError: API key missing (history untouched)
            InputValidationError: Empty user text (history untouched)
            ServiceError: The call failed after retries
        """
        ...

    async def close(self) -> None:
        """Close any open connections and clean up resources."""
        ...
