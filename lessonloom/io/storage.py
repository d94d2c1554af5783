"""Resumable key/value storage partitioned by topic.

Responsibilities:
- Define the `ResumableStore` contract used by the orchestrator.
- Provide a durable filesystem implementation with atomic, fsync'd writes.
- Provide an in-memory implementation for tests and embedding callers.

Key types:
- `ResumableStore`: `get` / `put` / `clear` protocol.
- `FileResumableStore`: one directory per topic, one JSON document per key.
- `InMemoryResumableStore`: dict-backed store with copy-on-read semantics.
"""

from __future__ import annotations

import copy
import json
import os
import shutil
import tempfile
from hashlib import sha256
from pathlib import Path
from typing import Any, Protocol

from ..errors import StorageFailureError
from ..parsing import slugify


class ResumableStore(Protocol):
    """Durable key/value persistence keyed by owning topic and document key."""

    def get(self, topic: str, key: str) -> Any | None:
        """Return the stored value, or `None` when absent or owned by another topic."""

    def put(self, topic: str, key: str, value: Any) -> None:
        """Persist `value`; the write is durable when this returns."""

    def clear(self, topic: str) -> None:
        """Discard every document stored for `topic`."""


def topic_partition_name(topic: str) -> str:
    """Return a filesystem-safe, collision-resistant directory name for a topic."""

    digest = sha256(topic.encode("utf-8")).hexdigest()[:10]
    return f"{slugify(topic, fallback='topic')}-{digest}"


class FileResumableStore:
    """Filesystem-backed resumable store.

    Layout: `<root>/topics/<slug>-<hash>/<key>.json`. Each document wraps its
    value as `{"topic": ..., "key": ..., "value": ...}` so a read can reject a
    document that belongs to a different topic.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def topic_dir(self, topic: str) -> Path:
        return self.root / "topics" / topic_partition_name(topic)

    def _document_path(self, topic: str, key: str) -> Path:
        return self.topic_dir(topic) / f"{slugify(key, fallback='document')}.json"

    def get(self, topic: str, key: str) -> Any | None:
        path = self._document_path(topic, key)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StorageFailureError(detail=f"Failed to read `{path}`: {exc}") from exc

        try:
            document = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise StorageFailureError(detail=f"Stored document `{path}` is not valid JSON.") from exc
        if not isinstance(document, dict):
            raise StorageFailureError(detail=f"Stored document `{path}` must be a JSON object.")
        if document.get("topic") != topic or document.get("key") != key:
            return None
        return document.get("value")

    def put(self, topic: str, key: str, value: Any) -> None:
        path = self._document_path(topic, key)
        document = {"topic": topic, "key": key, "value": value}
        try:
            payload = json.dumps(document, ensure_ascii=False, indent=2, sort_keys=True)
        except (TypeError, ValueError) as exc:
            raise StorageFailureError(detail=f"Value for `{key}` is not JSON-serializable: {exc}") from exc

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            file_descriptor, temp_name = tempfile.mkstemp(
                prefix=f".{path.stem}-", suffix=".tmp", dir=path.parent
            )
            try:
                with os.fdopen(file_descriptor, "w", encoding="utf-8") as handle:
                    handle.write(payload)
                    handle.flush()
                    os.fsync(handle.fileno())
                os.replace(temp_name, path)
            except BaseException:
                Path(temp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise StorageFailureError(detail=f"Failed to write `{path}`: {exc}") from exc

    def clear(self, topic: str) -> None:
        directory = self.topic_dir(topic)
        try:
            shutil.rmtree(directory)
        except FileNotFoundError:
            return
        except OSError as exc:
            raise StorageFailureError(detail=f"Failed to clear `{directory}`: {exc}") from exc


class InMemoryResumableStore:
    """Dict-backed resumable store; values are deep-copied on read and write."""

    def __init__(self) -> None:
        self._documents: dict[str, dict[str, Any]] = {}

    def get(self, topic: str, key: str) -> Any | None:
        value = self._documents.get(topic, {}).get(key)
        return copy.deepcopy(value)

    def put(self, topic: str, key: str, value: Any) -> None:
        self._documents.setdefault(topic, {})[key] = copy.deepcopy(value)

    def clear(self, topic: str) -> None:
        self._documents.pop(topic, None)
