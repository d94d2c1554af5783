"""Outline stage: topic in, ordered chapter titles out."""

from __future__ import annotations

from ..errors import InvalidFormatError
from ..llm.provider_adapter import ProviderRequest
from ..llm.schemas import OutlineOutput
from .base import StageGenerator, StageResult


class OutlineGenerator(StageGenerator):
    stage_name = "outline"

    def generate(self, topic: str, language: str) -> StageResult[tuple[str, ...]]:
        """Return the outline for `topic`; an empty outline fails the whole run."""

        operation = self._execute(
            ProviderRequest(
                model=self.model,
                prompt=self.prompts.outline_prompt(topic, language),
                response_kind="json",
                output_shape=OutlineOutput,
            )
        )
        titles: list[str] = []
        for title in operation.result.outline:
            normalized = " ".join(title.split())
            if normalized:
                titles.append(normalized)
        if not titles:
            raise InvalidFormatError(
                stage=self.stage_name,
                detail=f'The provider returned an empty outline for "{topic}".',
            )
        return StageResult(value=tuple(titles), index_used=operation.index_used)
