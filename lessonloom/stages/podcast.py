"""On-demand podcast stages: dialogue script, then synthesized audio."""

from __future__ import annotations

from ..errors import InvalidFormatError
from ..llm.prompts import EXPERT_SPEAKER, HOST_SPEAKER
from ..llm.provider_adapter import ProviderRequest
from .base import StageGenerator, StageResult


DEFAULT_SPEAKER_VOICES = {HOST_SPEAKER: "Algenib", EXPERT_SPEAKER: "Achernar"}


class PodcastScriptGenerator(StageGenerator):
    stage_name = "podcast_script"

    def generate(
        self,
        topic: str,
        chapter_title: str,
        chapter_content: str,
        language: str,
    ) -> StageResult[str]:
        """Return a two-speaker dialogue script for one chapter."""

        operation = self._execute(
            ProviderRequest(
                model=self.model,
                prompt=self.prompts.podcast_script_prompt(
                    topic=topic,
                    chapter_title=chapter_title,
                    chapter_content=chapter_content,
                    language=language,
                ),
                response_kind="text",
            )
        )
        script = operation.result.strip() if isinstance(operation.result, str) else ""
        if not script:
            raise InvalidFormatError(
                stage=self.stage_name,
                detail=f'The provider returned an empty podcast script for "{chapter_title}".',
            )
        return StageResult(value=script, index_used=operation.index_used)


class AudioGenerator(StageGenerator):
    stage_name = "audio"

    def __init__(self, *, speakers: dict[str, str] | None = None, **kwargs: object) -> None:
        super().__init__(**kwargs)  # type: ignore[arg-type]
        self.speakers = dict(speakers) if speakers else dict(DEFAULT_SPEAKER_VOICES)

    def generate(self, script: str) -> StageResult[str]:
        """Synthesize `script` and return an audio reference (a WAV data URI).

        Raises:
            ValueError: When `script` is blank; audio always follows a script.
        """

        if not script or not script.strip():
            raise ValueError("A non-empty podcast script is required to generate audio.")
        operation = self._execute(
            ProviderRequest(
                model=self.model,
                prompt=self.prompts.audio_prompt(script),
                response_kind="audio",
                speakers=self.speakers,
            )
        )
        return StageResult(value=operation.result, index_used=operation.index_used)
