"""Quiz stage: chapter text in, four-option questions out."""

from __future__ import annotations

from collections.abc import Sequence

from ..errors import InvalidFormatError
from ..llm.provider_adapter import ProviderRequest
from ..llm.schemas import QuizBatch, QuizItem
from .base import StageGenerator, StageResult


class QuizGenerator(StageGenerator):
    """Generate multiple-choice questions for one chapter.

    Models sometimes return an answer that is not one of the four options. Such
    a batch is requested again, up to `max_answer_attempts` times, before the
    stage fails with `InvalidFormatError`.
    """

    stage_name = "quiz"

    def __init__(self, *, max_answer_attempts: int = 3, **kwargs: object) -> None:
        super().__init__(**kwargs)  # type: ignore[arg-type]
        self.max_answer_attempts = max(1, max_answer_attempts)

    def generate(
        self,
        topic: str,
        chapter_title: str,
        chapter_content: str,
        language: str,
        count: int,
        existing_questions: Sequence[str] = (),
    ) -> StageResult[list[QuizItem]]:
        """Return up to `count` validated questions; zero questions is a valid result."""

        request = ProviderRequest(
            model=self.model,
            prompt=self.prompts.quiz_prompt(
                topic=topic,
                chapter_title=chapter_title,
                chapter_content=chapter_content,
                language=language,
                count=count,
                existing_questions=existing_questions,
            ),
            response_kind="json",
            output_shape=QuizBatch,
        )
        mismatched = 0
        for _ in range(self.max_answer_attempts):
            operation = self._execute(request)
            batch: QuizBatch = operation.result
            mismatched = sum(1 for item in batch.questions if not item.answer_in_options)
            if mismatched == 0:
                return StageResult(value=list(batch.questions)[:count], index_used=operation.index_used)
        raise InvalidFormatError(
            stage=self.stage_name,
            detail=(
                f'Quiz for chapter "{chapter_title}" still had {mismatched} answer(s) outside '
                f"their options after {self.max_answer_attempts} attempts."
            ),
        )
