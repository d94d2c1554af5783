"""Core datatypes shared across Lessonloom modules.

Responsibilities:
- Represent the records persisted per topic (theory, flashcards, quiz).
- Provide explicit JSON payload conversion for the resumable store.
- Describe progress events and run outcomes reported to callers.

Key types:
- `Chapter`, `TheorySet`, `Flashcard`, `FlashcardSet`, `QuizQuestion`,
  `QuizSet`, `ProgressEvent`, and `GenerationOutcome`.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Mapping

from ..parsing import slugify


def chapter_id_for(position: int, title: str) -> str:
    """Return the stable chapter identifier for a 0-based outline position."""

    return f"{position + 1:03d}-{slugify(title, fallback='chapter')}"


def _optional_text(payload: Mapping[str, Any], key: str) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"Stored field `{key}` must be a string or null.")
    return value


def _required_text(payload: Mapping[str, Any], key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str):
        raise ValueError(f"Stored field `{key}` must be a string.")
    return value


@dataclass(frozen=True, slots=True)
class Chapter:
    """One chapter of a topic outline and its generated artifacts.

    Attributes:
        chapter_id: Stable identifier used as the foreign key of cards and questions.
        title: Chapter title from the outline.
        content: Markdown theory text; immutable once present.
        podcast_script: Optional two-speaker dialogue derived from `content`.
        audio_ref: Optional reference to synthesized podcast audio.
    """

    chapter_id: str
    title: str
    content: str | None = None
    podcast_script: str | None = None
    audio_ref: str | None = None

    @property
    def has_content(self) -> bool:
        """Return whether theory content has been generated for this chapter."""

        return bool(self.content and self.content.strip())

    def to_payload(self) -> dict[str, object]:
        return {
            "chapter_id": self.chapter_id,
            "title": self.title,
            "content": self.content,
            "podcast_script": self.podcast_script,
            "audio_ref": self.audio_ref,
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> Chapter:
        return cls(
            chapter_id=_required_text(payload, "chapter_id"),
            title=_required_text(payload, "title"),
            content=_optional_text(payload, "content"),
            podcast_script=_optional_text(payload, "podcast_script"),
            audio_ref=_optional_text(payload, "audio_ref"),
        )


@dataclass(frozen=True, slots=True)
class TheorySet:
    """Outline and chapters generated for one topic."""

    topic: str
    outline: tuple[str, ...]
    chapters: tuple[Chapter, ...]

    @classmethod
    def from_outline(cls, topic: str, outline: tuple[str, ...]) -> TheorySet:
        """Materialize empty chapters for every outline entry, in outline order."""

        return cls(
            topic=topic,
            outline=tuple(outline),
            chapters=tuple(
                Chapter(chapter_id=chapter_id_for(position, title), title=title)
                for position, title in enumerate(outline)
            ),
        )

    def with_chapter(self, index: int, chapter: Chapter) -> TheorySet:
        """Return a copy with the chapter at `index` replaced."""

        chapters = list(self.chapters)
        chapters[index] = chapter
        return replace(self, chapters=tuple(chapters))

    def to_payload(self) -> dict[str, object]:
        return {
            "topic": self.topic,
            "outline": list(self.outline),
            "chapters": [chapter.to_payload() for chapter in self.chapters],
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> TheorySet:
        outline = payload.get("outline")
        chapters = payload.get("chapters")
        if not isinstance(outline, list) or not isinstance(chapters, list):
            raise ValueError("Stored theory must contain `outline` and `chapters` lists.")
        if len(outline) != len(chapters):
            raise ValueError("Stored theory outline and chapters have different lengths.")
        return cls(
            topic=_required_text(payload, "topic"),
            outline=tuple(str(title) for title in outline),
            chapters=tuple(Chapter.from_payload(item) for item in chapters),
        )


@dataclass(frozen=True, slots=True)
class Flashcard:
    """A front/back card tagged with the chapter that produced it."""

    front: str
    back: str
    source_chapter_id: str
    source_chapter: str

    def to_payload(self) -> dict[str, object]:
        return {
            "front": self.front,
            "back": self.back,
            "source_chapter_id": self.source_chapter_id,
            "source_chapter": self.source_chapter,
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> Flashcard:
        return cls(
            front=_required_text(payload, "front"),
            back=_required_text(payload, "back"),
            source_chapter_id=_required_text(payload, "source_chapter_id"),
            source_chapter=_required_text(payload, "source_chapter"),
        )


@dataclass(frozen=True, slots=True)
class FlashcardSet:
    """Append-only flashcard collection for one topic."""

    topic: str
    cards: tuple[Flashcard, ...] = field(default_factory=tuple)

    def has_chapter(self, chapter_id: str) -> bool:
        """Return whether any card is tagged with the given chapter identifier."""

        return any(card.source_chapter_id == chapter_id for card in self.cards)

    def appended(self, cards: list[Flashcard]) -> FlashcardSet:
        return replace(self, cards=self.cards + tuple(cards))

    def to_payload(self) -> dict[str, object]:
        return {"topic": self.topic, "cards": [card.to_payload() for card in self.cards]}

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> FlashcardSet:
        cards = payload.get("cards")
        if not isinstance(cards, list):
            raise ValueError("Stored flashcards must contain a `cards` list.")
        return cls(
            topic=_required_text(payload, "topic"),
            cards=tuple(Flashcard.from_payload(item) for item in cards),
        )


@dataclass(frozen=True, slots=True)
class QuizQuestion:
    """A four-option multiple-choice question tagged with its chapter."""

    question: str
    options: tuple[str, ...]
    answer: str
    explanation: str
    source_chapter_id: str
    source_chapter: str

    def to_payload(self) -> dict[str, object]:
        return {
            "question": self.question,
            "options": list(self.options),
            "answer": self.answer,
            "explanation": self.explanation,
            "source_chapter_id": self.source_chapter_id,
            "source_chapter": self.source_chapter,
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> QuizQuestion:
        options = payload.get("options")
        if not isinstance(options, list):
            raise ValueError("Stored quiz question must contain an `options` list.")
        return cls(
            question=_required_text(payload, "question"),
            options=tuple(str(option) for option in options),
            answer=_required_text(payload, "answer"),
            explanation=_required_text(payload, "explanation"),
            source_chapter_id=_required_text(payload, "source_chapter_id"),
            source_chapter=_required_text(payload, "source_chapter"),
        )


@dataclass(frozen=True, slots=True)
class QuizSet:
    """Append-only quiz question collection for one topic."""

    topic: str
    questions: tuple[QuizQuestion, ...] = field(default_factory=tuple)

    def has_chapter(self, chapter_id: str) -> bool:
        """Return whether any question is tagged with the given chapter identifier."""

        return any(question.source_chapter_id == chapter_id for question in self.questions)

    def appended(self, questions: list[QuizQuestion]) -> QuizSet:
        return replace(self, questions=self.questions + tuple(questions))

    def to_payload(self) -> dict[str, object]:
        return {
            "topic": self.topic,
            "questions": [question.to_payload() for question in self.questions],
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> QuizSet:
        questions = payload.get("questions")
        if not isinstance(questions, list):
            raise ValueError("Stored quiz must contain a `questions` list.")
        return cls(
            topic=_required_text(payload, "topic"),
            questions=tuple(QuizQuestion.from_payload(item) for item in questions),
        )


@dataclass(frozen=True, slots=True)
class ProgressEvent:
    """One progress notification emitted to the caller.

    Attributes:
        stage: `outline`, `content`, `flashcards`, `quiz`, `podcast_script`,
            `audio`, or `run`.
        chapter_index: 0-based chapter index, or `None` for topic-level events.
        status: `started`, `completed`, `skipped`, `done`, `failed`, or `cancelled`.
        detail: Optional short human-readable note.
    """

    stage: str
    chapter_index: int | None
    status: str
    detail: str | None = None


@dataclass(frozen=True, slots=True)
class GenerationOutcome:
    """Final result of one orchestrated run.

    Attributes:
        topic: Topic the run operated on.
        status: `done` or `cancelled`. Failed runs raise instead.
        events: Every progress event emitted during the run, in order.
        chapters_total: Number of chapters in the outline.
        chapters_completed: Chapters with content, cards, and quiz confirmed.
    """

    topic: str
    status: str
    events: tuple[ProgressEvent, ...]
    chapters_total: int
    chapters_completed: int
