"""Main chat window."""

from __future__ import annotations

from collections import deque
from concurrent.futures import CancelledError as FutureCancelledError
from concurrent.futures import Future
from pathlib import Path
from typing import Callable

from PySide6.QtCore import Qt, QMetaObject, QTimer, Slot
from PySide6.QtGui import QAction
from PySide6.QtWidgets import (
    QFrame,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QListWidget,
    QListWidgetItem,
    QMainWindow,
    QMessageBox,
    QProgressBar,
    QPushButton,
    QStackedWidget,
    QVBoxLayout,
    QWidget,
)

from ..audio.engine import build_speech_engine
from ..config.credentials import build_credential_source
from ..config.store import SecretStore
from ..core.config import Settings, get_settings
from ..core.logger import ui as log
from ..runtime.controller import ConversationController
from ..services.api import CompletionClient
from ..services.schemas import Message, Notice
from ..state.app_state import StateSnapshot
from .settings_dialog import SettingsDialog


class _ChatBubble(QWidget):
    """Render one message, with a play/stop toggle on assistant answers."""

    def __init__(self, message: Message, on_speak: Callable[[str], None]) -> None:
        super().__init__()
        self.message = message
        outer = QHBoxLayout(self)
        outer.setContentsMargins(0, 0, 0, 0)
        frame = QFrame()
        frame.setObjectName("chatBubble")
        frame.setProperty("bubbleRole", "user" if message.is_user else "assistant")
        frame.setMaximumWidth(520)
        frame_layout = QVBoxLayout(frame)
        frame_layout.setContentsMargins(14, 8, 14, 8)
        frame_layout.setSpacing(4)

        row = QHBoxLayout()
        text_label = QLabel(message.text)
        text_label.setWordWrap(True)
        text_label.setTextInteractionFlags(Qt.TextInteractionFlag.TextSelectableByMouse)
        row.addWidget(text_label, 1)
        self._speak_button: QPushButton | None = None
        if not message.is_user:
            self._speak_button = QPushButton("▶")
            self._speak_button.setObjectName("speakButton")
            self._speak_button.setFixedSize(26, 26)
            self._speak_button.clicked.connect(lambda: on_speak(message.text))
            row.addWidget(self._speak_button, 0, Qt.AlignmentFlag.AlignTop)
        frame_layout.addLayout(row)

        time_label = QLabel(message.time_label())
        time_label.setObjectName("timeLabel")
        frame_layout.addWidget(time_label)

        if message.is_user:
            outer.addStretch(1)
            outer.addWidget(frame, 0, Qt.AlignmentFlag.AlignRight)
        else:
            outer.addWidget(frame, 0, Qt.AlignmentFlag.AlignLeft)
            outer.addStretch(1)

    def set_speaking(self, speaking: bool) -> None:
        if self._speak_button is not None:
            self._speak_button.setText("■" if speaking else "▶")


class ChatMainWindow(QMainWindow):
    """Chat screen wired to the conversation controller."""

    def __init__(self, settings: Settings | None = None) -> None:
        super().__init__()
        self.setWindowTitle("AI Assistant")
        self.setMinimumSize(520, 640)

        self.settings = settings or get_settings()
        secrets_path = Path(self.settings.secrets_path).expanduser() if self.settings.secrets_path else None
        self.store = SecretStore(secrets_path)
        self.controller = ConversationController(
            self.settings,
            build_credential_source(self.settings, self.store),
            CompletionClient(self.settings),
            build_speech_engine(self.settings),
        )
        self.controller.attach_view(
            on_change=self._handle_change,
            on_notice=self._handle_notice,
            clear_input=self._handle_clear_input,
        )

        self._pending_snapshot: StateSnapshot | None = None
        self._pending_notices: deque[Notice] = deque()
        self._bubbles: list[_ChatBubble] = []

        self._build_layout()
        self._build_menu()
        self._apply_theme()
        self._apply_snapshot_state(self.controller.snapshot())

    # ------------------------------------------------------------------ #
    # UI construction
    # ------------------------------------------------------------------ #
    def _build_layout(self) -> None:
        container = QWidget()
        layout = QVBoxLayout(container)
        layout.setContentsMargins(16, 16, 16, 16)
        layout.setSpacing(10)

        self._stack = QStackedWidget()
        welcome = QWidget()
        welcome_layout = QVBoxLayout(welcome)
        welcome_layout.addStretch(1)
        title = QLabel("Start a Conversation")
        title.setObjectName("welcomeTitle")
        title.setAlignment(Qt.AlignmentFlag.AlignCenter)
        subtitle = QLabel("Ask anything to get started")
        subtitle.setObjectName("welcomeSubtitle")
        subtitle.setAlignment(Qt.AlignmentFlag.AlignCenter)
        welcome_layout.addWidget(title)
        welcome_layout.addWidget(subtitle)
        welcome_layout.addStretch(1)
        self._stack.addWidget(welcome)

        self._chat_list = QListWidget()
        self._chat_list.setObjectName("chatList")
        self._chat_list.setSpacing(4)
        self._chat_list.setSelectionMode(QListWidget.SelectionMode.NoSelection)
        self._stack.addWidget(self._chat_list)
        layout.addWidget(self._stack, 1)

        self._progress = QProgressBar()
        self._progress.setRange(0, 0)
        self._progress.setTextVisible(False)
        self._progress.setFixedHeight(4)
        self._progress.hide()
        layout.addWidget(self._progress)

        input_row = QHBoxLayout()
        self._input = QLineEdit()
        self._input.setPlaceholderText("Type your message...")
        self._input.returnPressed.connect(self._on_submit)
        input_row.addWidget(self._input, 1)
        self._send_button = QPushButton("Send")
        self._send_button.clicked.connect(self._on_send_clicked)
        input_row.addWidget(self._send_button)
        layout.addLayout(input_row)

        self.setCentralWidget(container)

    def _build_menu(self) -> None:
        settings_action = QAction("Settings", self)
        settings_action.triggered.connect(self._open_settings_dialog)
        self.menuBar().addAction(settings_action)

    def _apply_theme(self) -> None:
        self.setStyleSheet(
            """
            QWidget { font-family: 'Segoe UI', 'Inter', sans-serif; font-size: 14px; }
            QLabel#welcomeTitle { font-size: 22px; font-weight: 600; }
            QLabel#welcomeSubtitle { color: #757575; }
            QListWidget#chatList { border: none; }
            QFrame#chatBubble { border-radius: 16px; }
            QFrame#chatBubble[bubbleRole="user"] { background-color: #5c6bc0; color: white; }
            QFrame#chatBubble[bubbleRole="assistant"] { background-color: #eceff1; color: #263238; }
            QLabel#timeLabel { font-size: 11px; color: #9e9e9e; }
            QPushButton#speakButton { border: none; color: #5c6bc0; font-size: 16px; }
            QLineEdit { border-radius: 18px; padding: 8px 16px; background-color: #eceff1; border: none; }
            """
        )

    # ------------------------------------------------------------------ #
    # Controller callbacks (controller loop thread)
    # ------------------------------------------------------------------ #
    def _handle_change(self, snapshot: StateSnapshot) -> None:
        self._pending_snapshot = snapshot
        QMetaObject.invokeMethod(self, "_apply_snapshot", Qt.QueuedConnection)

    def _handle_notice(self, notice: Notice) -> None:
        self._pending_notices.append(notice)
        QMetaObject.invokeMethod(self, "_drain_notices", Qt.QueuedConnection)

    def _handle_clear_input(self) -> None:
        QMetaObject.invokeMethod(self._input, "clear", Qt.QueuedConnection)

    # ------------------------------------------------------------------ #
    # Slots (UI thread)
    # ------------------------------------------------------------------ #
    @Slot()
    def _apply_snapshot(self) -> None:
        snapshot = self._pending_snapshot
        if snapshot is None:
            return
        self._apply_snapshot_state(snapshot)

    def _apply_snapshot_state(self, snapshot: StateSnapshot) -> None:
        appended = False
        for message in snapshot.messages[len(self._bubbles):]:
            bubble = _ChatBubble(message, self.controller.speak_threadsafe)
            item = QListWidgetItem(self._chat_list)
            item.setSizeHint(bubble.sizeHint())
            self._chat_list.addItem(item)
            self._chat_list.setItemWidget(item, bubble)
            self._bubbles.append(bubble)
            appended = True
        for bubble in self._bubbles:
            bubble.set_speaking(snapshot.is_speaking)
        self._stack.setCurrentIndex(1 if snapshot.messages else 0)
        self._progress.setVisible(snapshot.is_loading)
        if appended:
            QTimer.singleShot(100, self._chat_list.scrollToBottom)

    @Slot()
    def _drain_notices(self) -> None:
        while self._pending_notices:
            notice = self._pending_notices.popleft()
            if notice.action == "open_settings":
                self._show_settings_notice(notice)
            else:
                color = "#c62828" if notice.level == "error" else "#424242"
                self.statusBar().setStyleSheet(f"color: {color};")
                self.statusBar().showMessage(notice.text, 4000)

    def _show_settings_notice(self, notice: Notice) -> None:
        box = QMessageBox(self)
        box.setWindowTitle("AI Assistant")
        box.setIcon(QMessageBox.Information)
        box.setText(notice.text)
        settings_btn = box.addButton("Settings", QMessageBox.AcceptRole)
        box.addButton(QMessageBox.Close)
        box.exec()
        if box.clickedButton() is settings_btn:
            self._open_settings_dialog()

    def _on_send_clicked(self) -> None:
        if self._input.text():
            self._on_submit()

    def _on_submit(self) -> None:
        future = self.controller.submit_threadsafe(self._input.text())
        future.add_done_callback(self._log_submit_result)

    @staticmethod
    def _log_submit_result(future: Future) -> None:
        try:
            status = future.result()
        except (FutureCancelledError, RuntimeError):
            return
        except Exception:  # pragma: no cover - submit contains its failures
            log.exception("submit crashed")
            return
        log.info("submit finished", extra={"outcome": status.value})

    def _open_settings_dialog(self) -> None:
        dialog = SettingsDialog(self.store, self.settings.secret_name, parent=self)
        dialog.exec()

    # ------------------------------------------------------------------ #
    # Qt event overrides
    # ------------------------------------------------------------------ #
    def closeEvent(self, event) -> None:  # type: ignore[override]
        self.controller.shutdown()
        super().closeEvent(event)
