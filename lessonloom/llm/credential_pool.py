"""Rotation state over an ordered list of provider credentials.

The pool holds no retry policy. `OperationRunner` decides when to advance;
the orchestrator persists `current_index` between runs.
"""

from __future__ import annotations

from collections.abc import Iterable

from ..parsing import parse_api_keys


class CredentialPool:
    """Ordered provider credentials with a wrap-around current index."""

    def __init__(self, credentials: Iterable[str], start_index: int = 0) -> None:
        """Initialize the pool, dropping blank and duplicate credentials."""

        self._credentials = parse_api_keys(list(credentials))
        self._index = start_index % len(self._credentials) if self._credentials else 0

    def size(self) -> int:
        """Return the number of usable credentials."""

        return len(self._credentials)

    def __len__(self) -> int:
        return self.size()

    @property
    def current_index(self) -> int:
        return self._index

    def current(self) -> str:
        """Return the credential at the current index.

        Raises:
            IndexError: When the pool is empty; callers check `size()` first.
        """

        if not self._credentials:
            raise IndexError("Credential pool is empty.")
        return self._credentials[self._index]

    def advance(self) -> int:
        """Move to the next credential, wrapping around, and return the new index."""

        if not self._credentials:
            raise IndexError("Credential pool is empty.")
        self._index = (self._index + 1) % len(self._credentials)
        return self._index

    def __repr__(self) -> str:
        return f"CredentialPool(size={self.size()}, current_index={self._index})"
