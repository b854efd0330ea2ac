"""Data exchanged between the controller, the client and the views."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Literal, Optional


class Origin(str, Enum):
    """Author of a conversation message."""

    USER = "user"
    ASSISTANT = "assistant"


class SubmitStatus(str, Enum):
    """Outcome of a single submit call."""

    IGNORED = "ignored"
    MISSING_CREDENTIAL = "missing_credential"
    BUSY = "busy"
    COMPLETED = "completed"
    FAILED = "failed"
    DISCARDED = "discarded"


@dataclass(frozen=True, slots=True)
class Message:
    """Immutable conversation entry."""

    text: str
    origin: Origin
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def is_user(self) -> bool:
        return self.origin is Origin.USER

    def time_label(self) -> str:
        """Render the timestamp as HH:MM."""
        return f"{self.timestamp.hour:02d}:{self.timestamp.minute:02d}"


@dataclass(frozen=True, slots=True)
class Notice:
    """Transient user-visible notification."""

    text: str
    level: Literal["info", "error"] = "info"
    action: Optional[Literal["open_settings"]] = None
