"""Flashcard stage: chapter text in, front/back cards out."""

from __future__ import annotations

from collections.abc import Sequence

from ..llm.provider_adapter import ProviderRequest
from ..llm.schemas import FlashcardBatch, FlashcardItem
from .base import StageGenerator, StageResult


class FlashcardGenerator(StageGenerator):
    stage_name = "flashcards"

    def generate(
        self,
        topic: str,
        chapter_title: str,
        chapter_content: str,
        language: str,
        count: int,
        existing_fronts: Sequence[str] = (),
    ) -> StageResult[list[FlashcardItem]]:
        """Return up to `count` cards for one chapter.

        Zero cards is a valid result. Cards with a blank side are dropped.
        """

        operation = self._execute(
            ProviderRequest(
                model=self.model,
                prompt=self.prompts.flashcards_prompt(
                    topic=topic,
                    chapter_title=chapter_title,
                    chapter_content=chapter_content,
                    language=language,
                    count=count,
                    existing_fronts=existing_fronts,
                ),
                response_kind="json",
                output_shape=FlashcardBatch,
            )
        )
        batch: FlashcardBatch = operation.result
        cards = [card for card in batch.cards if card.front.strip() and card.back.strip()]
        return StageResult(value=cards[:count], index_used=operation.index_used)
