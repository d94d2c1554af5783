"""Recompute a topic's run position from stored artifacts.

There is no stored cursor. The next piece of work is always derived from the
theory set plus the chapter tags on flashcards and quiz questions.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from ..models.datatypes import FlashcardSet, QuizSet, TheorySet


@dataclass(frozen=True, slots=True)
class ChapterStatus:
    """Per-chapter completion flags derived from stored artifacts."""

    index: int
    chapter_id: str
    title: str
    has_content: bool
    card_count: int
    question_count: int
    has_podcast_script: bool
    has_audio: bool

    @property
    def next_stage(self) -> str | None:
        """Return the first outstanding main-loop stage, or `None` when complete."""

        if not self.has_content:
            return "content"
        if self.card_count == 0:
            return "flashcards"
        if self.question_count == 0:
            return "quiz"
        return None


@dataclass(frozen=True, slots=True)
class ResumePoint:
    """Derived position of a topic's generation run.

    Attributes:
        topic: Topic the artifacts belong to.
        has_outline: Whether an outline exists (the run can resume).
        chapter_index: First chapter with outstanding work, or `None`.
        stage: Outstanding stage for that chapter (`outline` when no outline).
        chapters: Per-chapter status rows in outline order.
    """

    topic: str
    has_outline: bool
    chapter_index: int | None
    stage: str | None
    chapters: tuple[ChapterStatus, ...] = field(default_factory=tuple)

    @property
    def is_complete(self) -> bool:
        return self.has_outline and self.stage is None


def chapter_statuses(
    theory: TheorySet,
    flashcards: FlashcardSet | None,
    quiz: QuizSet | None,
) -> tuple[ChapterStatus, ...]:
    rows: list[ChapterStatus] = []
    for index, chapter in enumerate(theory.chapters):
        card_count = 0
        if flashcards is not None:
            card_count = sum(1 for card in flashcards.cards if card.source_chapter_id == chapter.chapter_id)
        question_count = 0
        if quiz is not None:
            question_count = sum(
                1 for question in quiz.questions if question.source_chapter_id == chapter.chapter_id
            )
        rows.append(
            ChapterStatus(
                index=index,
                chapter_id=chapter.chapter_id,
                title=chapter.title,
                has_content=chapter.has_content,
                card_count=card_count,
                question_count=question_count,
                has_podcast_script=bool(chapter.podcast_script),
                has_audio=bool(chapter.audio_ref),
            )
        )
    return tuple(rows)


def detect_resume_point(
    topic: str,
    theory: TheorySet | None,
    flashcards: FlashcardSet | None,
    quiz: QuizSet | None,
) -> ResumePoint:
    """Derive where a run for `topic` would continue.

    A chapter whose flashcard or quiz generation legitimately returned zero
    items is reported as outstanding; the orchestrator will ask again on the
    next run.
    """

    if theory is None or not theory.outline:
        return ResumePoint(topic=topic, has_outline=False, chapter_index=None, stage="outline")

    rows = chapter_statuses(theory, flashcards, quiz)
    for row in rows:
        if row.next_stage is not None:
            return ResumePoint(
                topic=topic,
                has_outline=True,
                chapter_index=row.index,
                stage=row.next_stage,
                chapters=rows,
            )
    return ResumePoint(topic=topic, has_outline=True, chapter_index=None, stage=None, chapters=rows)
