"""Storage adapters for generated artifacts."""

from .storage import FileResumableStore, InMemoryResumableStore, ResumableStore

__all__ = ["FileResumableStore", "InMemoryResumableStore", "ResumableStore"]
