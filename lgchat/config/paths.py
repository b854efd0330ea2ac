"""Filesystem helpers for the chat client."""

from __future__ import annotations

import os
from pathlib import Path


def app_root() -> Path:
    """Return the per-user application folder (``LGCHAT_HOME`` overrides it)."""
    override = os.environ.get("LGCHAT_HOME")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".lgchat"


def config_dir() -> Path:
    """Directory storing local configuration and credentials."""
    root = app_root() / "config"
    root.mkdir(parents=True, exist_ok=True)
    return root


def logs_dir() -> Path:
    """Directory receiving the JSON log files."""
    root = app_root() / "logs"
    root.mkdir(parents=True, exist_ok=True)
    return root


def models_dir() -> Path:
    """Directory storing the Piper voices."""
    root = app_root() / "resources" / "models"
    root.mkdir(parents=True, exist_ok=True)
    return root
