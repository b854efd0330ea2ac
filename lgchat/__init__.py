"""Gemini chat client with spoken answers."""

from __future__ import annotations

from typing import Any

__all__ = ["run"]

__version__ = "0.1.0"


def run(*args: Any, **kwargs: Any) -> Any:
    """Entrypoint launching the chat window (lazy import)."""
    from .app import run as _run

    return _run(*args, **kwargs)
