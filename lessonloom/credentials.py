"""Secure credential storage helpers for Lessonloom CLI.

Responsibilities:
- Persist the provider API key pool in an OS-backed secure credential store.
- Provide deterministic read/write/delete operations for the pool.
- Avoid logging or exposing secret values in diagnostics.

Key types:
- `CredentialStore`: interface for API key pool persistence.
- `KeyringCredentialStore`: keyring-backed secure credential storage.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from .parsing import parse_api_keys


_DEFAULT_SERVICE_NAME = "lessonloom"
_DEFAULT_ACCOUNT_NAME = "gemini_api_keys"


class CredentialStore:
    """Interface for secure provider credential operations."""

    def is_available(self) -> bool:
        """Return whether secure credential operations are available."""

        raise NotImplementedError

    def get_api_keys(self) -> tuple[str, ...]:
        """Load the stored API key pool, empty when nothing is stored."""

        raise NotImplementedError

    def set_api_keys(self, api_keys: Sequence[str]) -> None:
        """Persist an ordered API key pool."""

        raise NotImplementedError

    def clear_api_keys(self) -> bool:
        """Delete the stored pool and return whether one existed."""

        raise NotImplementedError


@dataclass(slots=True)
class KeyringCredentialStore(CredentialStore):
    """Secure credential store backed by the `keyring` package.

    The pool is stored as one newline-joined secret so rotation order survives
    a round trip.
    """

    service_name: str = _DEFAULT_SERVICE_NAME
    account_name: str = _DEFAULT_ACCOUNT_NAME

    def _load_keyring_module(self):
        """Import and return the `keyring` module."""

        import keyring

        return keyring

    def is_available(self) -> bool:
        """Return `True` when a usable keyring backend is configured."""

        keyring_module = self._load_keyring_module()
        backend = keyring_module.get_keyring()
        priority = getattr(backend, "priority", 1)
        return priority > 0

    def get_api_keys(self) -> tuple[str, ...]:
        keyring_module = self._load_keyring_module()
        value = keyring_module.get_password(self.service_name, self.account_name)
        if value is None:
            return ()
        return parse_api_keys(value)

    def set_api_keys(self, api_keys: Sequence[str]) -> None:
        """Persist a normalized API key pool in keyring."""

        normalized = parse_api_keys(list(api_keys))
        if not normalized:
            raise ValueError("At least one non-empty API key is required.")
        keyring_module = self._load_keyring_module()
        keyring_module.set_password(self.service_name, self.account_name, "\n".join(normalized))

    def clear_api_keys(self) -> bool:
        """Remove the stored pool from keyring and report if one was present."""

        if not self.get_api_keys():
            return False
        keyring_module = self._load_keyring_module()
        keyring_module.delete_password(self.service_name, self.account_name)
        return True


def create_credential_store() -> CredentialStore:
    """Create the default secure credential store implementation."""

    return KeyringCredentialStore()
