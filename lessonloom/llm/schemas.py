"""Pydantic output shapes for structured provider responses.

Shapes stay simple (plain strings and lists) so they remain compatible with
JSON-mode generation. Cross-field checks run after parsing; a failed check
surfaces as malformed provider output.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, model_validator


class OutlineOutput(BaseModel):
    """Ordered chapter titles for a topic."""

    outline: list[str] = Field(default_factory=list)


class FlashcardItem(BaseModel):
    """One front/back flashcard as returned by the provider."""

    front: str
    back: str


class QuizItem(BaseModel):
    """One multiple-choice question with exactly four options."""

    question: str
    options: list[str]
    answer: str
    explanation: str

    @model_validator(mode="after")
    def _check_options(self) -> QuizItem:
        if len(self.options) != 4:
            raise ValueError(f"quiz question must have 4 options, got {len(self.options)}")
        return self

    @property
    def answer_in_options(self) -> bool:
        return self.answer in self.options


class FlashcardBatch(BaseModel):
    cards: list[FlashcardItem] = Field(default_factory=list)


class QuizBatch(BaseModel):
    questions: list[QuizItem] = Field(default_factory=list)
