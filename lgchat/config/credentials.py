"""Credential sources injected into the conversation controller."""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Protocol

from ..core.config import Settings
from ..core.errors import MissingCredential
from .store import SecretStore


class CredentialSource(Protocol):
    """Capability returning the API key, or None when none is configured."""

    def get(self) -> Optional[str]: ...


class ConstantCredentialSource:
    """Always return the same key (deployment with a built-in key)."""

    def __init__(self, value: Optional[str]) -> None:
        self._value = value

    def get(self) -> Optional[str]:
        return _normalize(self._value)


class StoreCredentialSource:
    """Read the key from the SecretStore on every call."""

    def __init__(self, store: SecretStore, name: str) -> None:
        self.store = store
        self.name = name

    def get(self) -> Optional[str]:
        return _normalize(self.store.get(self.name))


def save_api_key(store: SecretStore, name: str, value: str) -> None:
    """Validate and persist a key typed by the user.

    Raises ValueError for an empty or blank value and SecretStoreError when the file
    cannot be written.
    """
    if not value or not value.strip():
        raise ValueError("Please enter an API key")
    store.set(name, value)


def require_credential(source: CredentialSource, name: str) -> str:
    """Return the key from ``source`` or raise MissingCredential."""
    value = source.get()
    if value is None:
        raise MissingCredential(name)
    return value


def _normalize(value: Optional[str]) -> Optional[str]:
    if value is None or not value.strip():
        return None
    return value


def build_credential_source(settings: Settings, store: Optional[SecretStore] = None) -> CredentialSource:
    """Return the source matching ``settings.credential_mode``."""
    if settings.credential_mode == "constant":
        return ConstantCredentialSource(settings.api_key)
    if store is None:
        path = Path(settings.secrets_path).expanduser() if settings.secrets_path else None
        store = SecretStore(path)
    return StoreCredentialSource(store, settings.secret_name)
