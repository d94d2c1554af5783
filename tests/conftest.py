"""Shared pytest fixtures for the full Lessonloom test suite."""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from typing import Any

import pytest

from lessonloom.io.storage import InMemoryResumableStore
from lessonloom.llm.provider_adapter import ProviderRequest
from lessonloom.llm.schemas import (
    FlashcardBatch,
    FlashcardItem,
    OutlineOutput,
    QuizBatch,
    QuizItem,
)
from lessonloom.pipeline.orchestrator import GenerationOptions, GenerationOrchestrator

_CHAPTER_TO_WRITE = re.compile(r'^Chapter to write: "(?P<title>.+)"$', re.MULTILINE)
_CHAPTER_LINE = re.compile(r"^Chapter: (?P<title>.+)$", re.MULTILINE)
_CURRENT_CHAPTER = re.compile(r'^Current chapter: "(?P<title>.+)"$', re.MULTILINE)


class ScriptedProvider:
    """Deterministic stand-in for `ProviderCallAdapter`.

    Answers every request kind with well-formed content derived from the
    chapter title found in the prompt. One-shot failures can be queued per
    request kind, optionally restricted to one chapter title.
    """

    def __init__(
        self,
        outline: Sequence[str] = ("Foundations", "Growth", "Legacy"),
        cards_per_call: int = 5,
        questions_per_call: int = 4,
    ) -> None:
        self.outline = list(outline)
        self.cards_per_call = cards_per_call
        self.questions_per_call = questions_per_call
        self.calls: list[tuple[str, str, ProviderRequest]] = []
        self._failures: list[tuple[str, str | None, BaseException]] = []

    def fail_next(
        self, kind: str, error: BaseException, title: str | None = None, times: int = 1
    ) -> None:
        """Queue `times` failures for the next matching requests."""

        self._failures.extend((kind, title, error) for _ in range(times))

    def count(self, kind: str) -> int:
        return sum(1 for call_kind, _, _ in self.calls if call_kind == kind)

    def credentials_used(self) -> list[str]:
        return [credential for _, credential, _ in self.calls]

    def prompts(self, kind: str) -> list[str]:
        return [request.prompt for call_kind, _, request in self.calls if call_kind == kind]

    @staticmethod
    def kind_of(request: ProviderRequest) -> str:
        if request.response_kind == "audio":
            return "audio"
        if request.output_shape is OutlineOutput:
            return "outline"
        if request.output_shape is FlashcardBatch:
            return "flashcards"
        if request.output_shape is QuizBatch:
            return "quiz"
        if "podcast writer" in request.prompt:
            return "podcast_script"
        return "content"

    def call(self, credential: str, request: ProviderRequest) -> Any:
        kind = self.kind_of(request)
        title = self._title_of(request.prompt)
        self.calls.append((kind, credential, request))
        for position, (failure_kind, failure_title, error) in enumerate(self._failures):
            if failure_kind == kind and (failure_title is None or failure_title == title):
                del self._failures[position]
                raise error

        if kind == "outline":
            return OutlineOutput(outline=list(self.outline))
        if kind == "content":
            return f"## {title}\n\nTheory about {title}."
        if kind == "flashcards":
            return FlashcardBatch(
                cards=[
                    FlashcardItem(front=f"{title} card {number}", back=f"{title} answer {number}")
                    for number in range(1, self.cards_per_call + 1)
                ]
            )
        if kind == "quiz":
            return QuizBatch(
                questions=[
                    QuizItem(
                        question=f"{title} question {number}",
                        options=["Alpha", "Beta", "Gamma", "Delta"],
                        answer="Beta",
                        explanation=f"Beta is covered in {title}.",
                    )
                    for number in range(1, self.questions_per_call + 1)
                ]
            )
        if kind == "podcast_script":
            return f"Host: Welcome to {title}!\nExpert: Glad to be here."
        return "data:audio/wav;base64,UklGRg=="

    @staticmethod
    def _title_of(prompt: str) -> str | None:
        for pattern in (_CHAPTER_TO_WRITE, _CHAPTER_LINE, _CURRENT_CHAPTER):
            match = pattern.search(prompt)
            if match is not None:
                return match.group("title")
        return None


class RecordingSleeper:
    """Sleeper replacement that records requested pauses instead of waiting."""

    def __init__(self) -> None:
        self.pauses: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.pauses.append(seconds)


@pytest.fixture
def scripted_provider() -> ScriptedProvider:
    """Provide a fresh scripted provider with a three-chapter outline."""

    return ScriptedProvider()


@pytest.fixture
def memory_store() -> InMemoryResumableStore:
    return InMemoryResumableStore()


@pytest.fixture
def sleeper() -> RecordingSleeper:
    return RecordingSleeper()


@pytest.fixture
def make_orchestrator(
    memory_store: InMemoryResumableStore,
    scripted_provider: ScriptedProvider,
    sleeper: RecordingSleeper,
) -> Callable[..., GenerationOrchestrator]:
    """Build orchestrators over the shared store/provider with overridable parts."""

    def _factory(**overrides: Any) -> GenerationOrchestrator:
        arguments: dict[str, Any] = {
            "store": memory_store,
            "adapter": scripted_provider,
            "credentials": ("key-a", "key-b"),
            "options": GenerationOptions(),
            "sleeper": sleeper,
        }
        arguments.update(overrides)
        return GenerationOrchestrator(**arguments)

    return _factory


@pytest.fixture
def scripted_provider_class() -> type[ScriptedProvider]:
    """Expose the scripted provider type for tests that need several instances."""

    return ScriptedProvider
