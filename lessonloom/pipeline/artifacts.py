"""Typed load/save helpers between the resumable store and datatypes.

Store keys:
- `theory`: `TheorySet` payload (outline and chapters).
- `flashcards`: `FlashcardSet` payload.
- `quiz`: `QuizSet` payload.
- `api_key_index` under the `@credentials` partition: persisted rotation index.
"""

from __future__ import annotations

from typing import Any, Callable, TypeVar

from ..errors import StorageFailureError
from ..io.storage import ResumableStore
from ..models.datatypes import FlashcardSet, QuizSet, TheorySet

THEORY_KEY = "theory"
FLASHCARDS_KEY = "flashcards"
QUIZ_KEY = "quiz"
CREDENTIALS_PARTITION = "@credentials"
CREDENTIAL_INDEX_KEY = "api_key_index"

_Record = TypeVar("_Record", TheorySet, FlashcardSet, QuizSet)


def _load_record(
    store: ResumableStore,
    topic: str,
    key: str,
    parser: Callable[[Any], _Record],
) -> _Record | None:
    payload = store.get(topic, key)
    if payload is None:
        return None
    try:
        record = parser(payload)
    except (ValueError, TypeError, AttributeError) as exc:
        raise StorageFailureError(detail=f"Stored `{key}` for topic `{topic}` is corrupt: {exc}") from exc
    if record.topic != topic:
        return None
    return record


def load_theory(store: ResumableStore, topic: str) -> TheorySet | None:
    return _load_record(store, topic, THEORY_KEY, TheorySet.from_payload)


def load_flashcards(store: ResumableStore, topic: str) -> FlashcardSet | None:
    return _load_record(store, topic, FLASHCARDS_KEY, FlashcardSet.from_payload)


def load_quiz(store: ResumableStore, topic: str) -> QuizSet | None:
    return _load_record(store, topic, QUIZ_KEY, QuizSet.from_payload)


def save_theory(store: ResumableStore, theory: TheorySet) -> None:
    store.put(theory.topic, THEORY_KEY, theory.to_payload())


def save_flashcards(store: ResumableStore, flashcards: FlashcardSet) -> None:
    store.put(flashcards.topic, FLASHCARDS_KEY, flashcards.to_payload())


def save_quiz(store: ResumableStore, quiz: QuizSet) -> None:
    store.put(quiz.topic, QUIZ_KEY, quiz.to_payload())


def load_credential_index(store: ResumableStore) -> int:
    """Return the persisted rotation index, or 0 when missing or invalid."""

    value = store.get(CREDENTIALS_PARTITION, CREDENTIAL_INDEX_KEY)
    if isinstance(value, int) and not isinstance(value, bool) and value >= 0:
        return value
    return 0


def save_credential_index(store: ResumableStore, index: int) -> None:
    store.put(CREDENTIALS_PARTITION, CREDENTIAL_INDEX_KEY, int(index))
