"""API key configuration dialog."""

from __future__ import annotations

from PySide6.QtCore import QTimer
from PySide6.QtWidgets import (
    QDialog,
    QGroupBox,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QMessageBox,
    QPushButton,
    QVBoxLayout,
    QWidget,
)

from ..config.credentials import save_api_key
from ..config.store import SecretStore
from ..core.errors import SecretStoreError
from ..core.logger import ui as log


class SettingsDialog(QDialog):
    """Edit the Gemini API key kept in the local secret store."""

    def __init__(self, store: SecretStore, secret_name: str, parent: QWidget | None = None) -> None:
        super().__init__(parent)
        self.setWindowTitle("Settings")
        self.setModal(True)
        self.setMinimumWidth(420)
        self._store = store
        self._secret_name = secret_name

        layout = QVBoxLayout(self)
        group = QGroupBox("API Configuration")
        group_layout = QVBoxLayout(group)

        group_layout.addWidget(QLabel("Gemini API Key"))
        row = QHBoxLayout()
        self._key_edit = QLineEdit()
        self._key_edit.setPlaceholderText("Enter your API key")
        self._key_edit.setEchoMode(QLineEdit.EchoMode.Password)
        self._key_edit.setText(store.get(secret_name) or "")
        row.addWidget(self._key_edit, 1)
        self._visibility_button = QPushButton("Show")
        self._visibility_button.setCheckable(True)
        self._visibility_button.toggled.connect(self._toggle_visibility)
        row.addWidget(self._visibility_button)
        group_layout.addLayout(row)

        hint = QLabel("Your API key is stored locally and securely.")
        hint.setStyleSheet("font-size: 12px; color: #8a8fa8;")
        group_layout.addWidget(hint)
        layout.addWidget(group)

        self._save_button = QPushButton("Save API Key")
        self._save_button.clicked.connect(self._save)
        layout.addWidget(self._save_button)

    def _toggle_visibility(self, visible: bool) -> None:
        self._key_edit.setEchoMode(QLineEdit.EchoMode.Normal if visible else QLineEdit.EchoMode.Password)
        self._visibility_button.setText("Hide" if visible else "Show")

    def _save(self) -> None:
        try:
            save_api_key(self._store, self._secret_name, self._key_edit.text())
        except ValueError as exc:
            QMessageBox.information(self, "Settings", str(exc))
            return
        except SecretStoreError as exc:
            log.warning("api key not saved: %s", exc)
            QMessageBox.warning(self, "Settings", f"Error saving API key: {exc}")
            return
        log.info("api key saved")
        self._save_button.setEnabled(False)
        self._save_button.setText("API key saved successfully")
        QTimer.singleShot(500, self.accept)
