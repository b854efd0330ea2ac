"""Entry point for the PySide6 chat client."""

from __future__ import annotations

from PySide6.QtWidgets import QApplication

from .core.config import Settings
from .ui.main_window import ChatMainWindow


def run(settings: Settings | None = None) -> int:
    """Start the chat UI."""
    app = QApplication.instance() or QApplication([])
    window = ChatMainWindow(settings)
    window.show()
    return app.exec()
