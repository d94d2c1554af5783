"""Chapter content stage: one Markdown theory chapter per call."""

from __future__ import annotations

from ..errors import InvalidFormatError
from ..llm.provider_adapter import ProviderRequest
from .base import StageGenerator, StageResult


class ChapterContentGenerator(StageGenerator):
    stage_name = "content"

    def generate(self, topic: str, chapter_title: str, language: str) -> StageResult[str]:
        """Return non-empty Markdown for one chapter.

        Empty content is a failure, not a skip: flashcards and quiz questions for
        the chapter are derived from this text.
        """

        operation = self._execute(
            ProviderRequest(
                model=self.model,
                prompt=self.prompts.chapter_prompt(topic, chapter_title, language),
                response_kind="text",
            )
        )
        content = operation.result.strip() if isinstance(operation.result, str) else ""
        if not content:
            raise InvalidFormatError(
                stage=self.stage_name,
                detail=f'The provider returned empty content for chapter "{chapter_title}".',
            )
        return StageResult(value=content, index_used=operation.index_used)
