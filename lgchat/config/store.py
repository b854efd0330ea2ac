"""Local key/value persistence for credentials."""

from __future__ import annotations

import base64
import json
import threading
from pathlib import Path
from typing import Any, Optional

from ..core.errors import SecretStoreError
from ..core.logger import store as log
from ..utils import dpapi
from .paths import config_dir


_PROTECTED_PREFIX = "dpapi:"


def default_secrets_path() -> Path:
    """Primary path for persisted secrets."""
    return config_dir() / "secrets.json"


class SecretStore:
    """Persist named credential strings in a small JSON file.

    Values are DPAPI-protected when pywin32 is available and stored as
    plain text otherwise.
    """

    def __init__(self, path: Optional[Path] = None, *, protect: Optional[bool] = None) -> None:
        self.path = Path(path) if path is not None else default_secrets_path()
        self._protect = dpapi.available() if protect is None else protect
        self._lock = threading.Lock()

    def get(self, name: str) -> Optional[str]:
        """Return the stored value for ``name`` or None when absent."""
        with self._lock:
            raw = self._load().get(name)
        if not isinstance(raw, str):
            return None
        return self._decode(name, raw)

    def set(self, name: str, value: str) -> None:
        """Store ``value`` under ``name``."""
        with self._lock:
            data = self._load()
            data[name] = self._encode(value)
            self._write(data)

    def delete(self, name: str) -> bool:
        """Remove ``name``; return True when something was deleted."""
        with self._lock:
            data = self._load()
            if name not in data:
                return False
            del data[name]
            self._write(data)
            return True

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #
    def _load(self) -> dict[str, Any]:
        try:
            raw_text = self.path.read_text(encoding="utf-8").lstrip("\ufeff")
        except FileNotFoundError:
            return {}
        except OSError as exc:
            log.warning("secret store unreadable: %s", exc)
            return {}
        try:
            data = json.loads(raw_text)
        except ValueError:
            log.warning("secret store corrupted, ignoring %s", self.path)
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict[str, Any]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_suffix(".tmp")
            tmp.write_text(json.dumps(data, indent=2), encoding="utf-8")
            tmp.replace(self.path)
        except OSError as exc:
            raise SecretStoreError(str(exc)) from exc

    def _encode(self, value: str) -> str:
        if not self._protect:
            return value
        try:
            blob = dpapi.protect(value.encode("utf-8"))
        except Exception as exc:
            raise SecretStoreError(f"Unable to protect the secret: {exc}") from exc
        return _PROTECTED_PREFIX + base64.b64encode(blob).decode("ascii")

    def _decode(self, name: str, raw: str) -> Optional[str]:
        if not raw.startswith(_PROTECTED_PREFIX):
            return raw
        try:
            blob = base64.b64decode(raw[len(_PROTECTED_PREFIX):])
            return dpapi.unprotect(blob).decode("utf-8")
        except Exception:
            log.warning("unable to decrypt stored secret %s", name)
            return None
