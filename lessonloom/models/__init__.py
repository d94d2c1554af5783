"""Shared typed data models for Lessonloom.

This package contains dataclasses used across pipeline modules to avoid
cross-module coupling and circular imports.
"""

from .datatypes import (
    Chapter,
    Flashcard,
    FlashcardSet,
    GenerationOutcome,
    ProgressEvent,
    QuizQuestion,
    QuizSet,
    TheorySet,
)

__all__ = [
    "Chapter",
    "Flashcard",
    "FlashcardSet",
    "GenerationOutcome",
    "ProgressEvent",
    "QuizQuestion",
    "QuizSet",
    "TheorySet",
]
