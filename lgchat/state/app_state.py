"""Conversation state owned by the controller."""

from __future__ import annotations

from dataclasses import dataclass, field

from ..services.schemas import Message


@dataclass(frozen=True, slots=True)
class StateSnapshot:
    """Read-only copy handed to views."""

    messages: tuple[Message, ...]
    is_loading: bool
    is_speaking: bool


@dataclass(slots=True)
class ConversationState:
    """Append-only message log plus the loading and speaking flags."""

    messages: list[Message] = field(default_factory=list)
    is_loading: bool = False
    is_speaking: bool = False

    def append(self, message: Message) -> None:
        self.messages.append(message)

    def snapshot(self) -> StateSnapshot:
        return StateSnapshot(
            messages=tuple(self.messages),
            is_loading=self.is_loading,
            is_speaking=self.is_speaking,
        )
