"""Conversation history handed to each LLM call."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum


class Role(str, Enum):
    """Message role in conversation."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True, slots=True)
class ConversationMessage:
    """A single message in conversation history."""

    role: Role
    content: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


class ConversationHistory:
    """Ordered message log whose first entry is always the system prompt.

    Holds at most ``max_turns * 2 + 1`` messages. Trimming drops the oldest
    non-system messages and happens only when an assistant reply is added,
    so a pending user turn is never cut off.
    """

    def __init__(self, system_prompt: str, max_turns: int = 10) -> None:
        if max_turns < 1:
            raise ValueError("max_turns must be >= 1")
        self.max_turns = max_turns
        self._messages: list[ConversationMessage] = [
            ConversationMessage(role=Role.SYSTEM, content=system_prompt)
        ]

    @property
    def capacity(self) -> int:
        return self.max_turns * 2 + 1

    @property
    def system_prompt(self) -> str:
        return self._messages[0].content

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self):
        return iter(tuple(self._messages))

    def snapshot(self) -> tuple[ConversationMessage, ...]:
        """Immutable view of the current messages."""
        return tuple(self._messages)

    def append(self, message: ConversationMessage) -> None:
        """Append a user or assistant message."""
        if message.role is Role.SYSTEM:
            raise ValueError("Use set_system_prompt() to change the system message")
        self._messages.append(message)
        if message.role is Role.ASSISTANT:
            self.trim()

    def add_user(self, text: str) -> ConversationMessage:
        msg = ConversationMessage(role=Role.USER, content=text)
        self.append(msg)
        return msg

    def add_assistant(self, text: str) -> ConversationMessage:
        msg = ConversationMessage(role=Role.ASSISTANT, content=text)
        self.append(msg)
        return msg

    def trim(self) -> None:
        """Keep the system message plus the newest ``capacity - 1`` messages."""
        cap = self.capacity
        if len(self._messages) > cap:
            self._messages = [self._messages[0], *self._messages[-(cap - 1) :]]

    def set_system_prompt(self, text: str) -> None:
        self._messages[0] = ConversationMessage(role=Role.SYSTEM, content=text)

    def clear(self) -> None:
        """Forget every turn, keeping the system prompt."""
        del self._messages[1:]

    def pop_last_user(self) -> ConversationMessage | None:
        """Remove the trailing user message (failed turn rollback)."""
        if len(self._messages) > 1 and self._messages[-1].role is Role.USER:
            return self._messages.pop()
        return None

    def discard(self, message: ConversationMessage) -> bool:
        """Remove exactly this message object (not an equal one) if present."""
        for index in range(len(self._messages) - 1, 0, -1):
            if self._messages[index] is message:
                del self._messages[index]
                return True
        return False

    def to_dicts(self) -> list[dict[str, str]]:
        """Messages as ``{"role", "content"}`` dicts for chat-completion APIs."""
        return [{"role": m.role.value, "content": m.content} for m in self._messages]
