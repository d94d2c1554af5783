"""Generation orchestration for Lessonloom.

Responsibilities:
- Sequence outline, chapter content, flashcard, and quiz stages for a topic.
- Persist every partial result before the next dependent stage starts.
- Resume from stored artifacts, honour cooperative cancellation, and keep a
  single-flight lock shared with the on-demand podcast/audio flow.

Key types:
- `GenerationOrchestrator`: the state machine facade.
- `GenerationOptions`: per-run counts, pacing, and model identifiers.
- `RunnerState`: lock token (`idle`, `running`, `cancelling`).
- `RunPhase`: observable phase of the current or last run.
"""

from __future__ import annotations

import enum
import threading
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace
from typing import TypeVar

from ..errors import (
    AlreadyRunningError,
    ChapterNotReadyError,
    CredentialsRequiredError,
    GenerationError,
    InvalidTopicError,
    OperationFailedError,
)
from ..io.storage import ResumableStore
from ..llm.credential_pool import CredentialPool
from ..llm.operation_runner import OperationRunner
from ..llm.provider_adapter import ProviderCallAdapter
from ..models.datatypes import (
    Flashcard,
    FlashcardSet,
    GenerationOutcome,
    ProgressEvent,
    QuizQuestion,
    QuizSet,
    TheorySet,
)
from ..parsing import normalize_optional_string
from ..stages import (
    AudioGenerator,
    ChapterContentGenerator,
    FlashcardGenerator,
    OutlineGenerator,
    PodcastScriptGenerator,
    QuizGenerator,
    StageResult,
)
from ..telemetry.logger import RunLogger
from .artifacts import (
    load_credential_index,
    load_flashcards,
    load_quiz,
    load_theory,
    save_credential_index,
    save_flashcards,
    save_quiz,
    save_theory,
)
from .resume import ResumePoint, detect_resume_point

DEFAULT_TEXT_MODEL = "gemini-2.0-flash"
DEFAULT_TTS_MODEL = "gemini-2.5-flash-preview-tts"

ProgressCallback = Callable[[ProgressEvent], None]
_Value = TypeVar("_Value")


class RunnerState(str, enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    CANCELLING = "cancelling"


class RunPhase(str, enum.Enum):
    IDLE = "idle"
    OUTLINE_PENDING = "outline_pending"
    CONTENT_PENDING = "content_pending"
    ENRICHMENT_PENDING = "enrichment_pending"
    SCRIPT_PENDING = "script_pending"
    AUDIO_PENDING = "audio_pending"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True, slots=True)
class GenerationOptions:
    """Per-run generation settings.

    Attributes:
        flashcards_per_chapter: Cards requested for each chapter.
        quiz_questions_per_chapter: Questions requested for each chapter.
        chapter_pause_seconds: Pause between chapters to avoid bursting the provider.
        text_model: Model for outline, content, flashcards, quiz, and scripts.
        tts_model: Model for podcast audio.
        max_quiz_answer_attempts: Re-requests allowed when a quiz answer is not an option.
        max_stage_attempts: Attempts per chapter stage when the provider fails with an
            unclassified error; malformed output and exhausted credentials are not retried.
        retry_backoff_seconds: Base pause before a retry, multiplied by the attempt number.
    """

    flashcards_per_chapter: int = 5
    quiz_questions_per_chapter: int = 4
    chapter_pause_seconds: float = 1.0
    text_model: str = DEFAULT_TEXT_MODEL
    tts_model: str = DEFAULT_TTS_MODEL
    max_quiz_answer_attempts: int = 3
    max_stage_attempts: int = 3
    retry_backoff_seconds: float = 1.0

    def validate(self) -> None:
        if self.flashcards_per_chapter <= 0:
            raise ValueError("`flashcards_per_chapter` must be a positive integer.")
        if self.quiz_questions_per_chapter <= 0:
            raise ValueError("`quiz_questions_per_chapter` must be a positive integer.")
        if self.chapter_pause_seconds < 0:
            raise ValueError("`chapter_pause_seconds` must not be negative.")
        if self.max_stage_attempts <= 0:
            raise ValueError("`max_stage_attempts` must be a positive integer.")
        if self.retry_backoff_seconds < 0:
            raise ValueError("`retry_backoff_seconds` must not be negative.")
        if not self.text_model.strip() or not self.tts_model.strip():
            raise ValueError("Model identifiers must be non-empty strings.")


class _RunCancelled(Exception):
    """Internal signal raised at a cancellation checkpoint."""


@dataclass(slots=True)
class _StageSet:
    outline: OutlineGenerator
    content: ChapterContentGenerator
    flashcards: FlashcardGenerator
    quiz: QuizGenerator
    podcast_script: PodcastScriptGenerator
    audio: AudioGenerator


class _RunContext:
    """Event buffer and callback fan-out for one run."""

    def __init__(self, callback: ProgressCallback | None, run_logger: RunLogger | None) -> None:
        self.events: list[ProgressEvent] = []
        self.last_index_used: int | None = None
        self._callback = callback
        self._run_logger = run_logger

    def emit(
        self,
        stage: str,
        chapter_index: int | None,
        status: str,
        detail: str | None = None,
    ) -> None:
        event = ProgressEvent(stage=stage, chapter_index=chapter_index, status=status, detail=detail)
        self.events.append(event)
        if self._run_logger is not None:
            if status == "started":
                self._run_logger.log_stage_start(stage, chapter=chapter_index)
            elif status == "completed":
                self._run_logger.log_stage_complete(stage, chapter=chapter_index)
            elif status == "skipped":
                self._run_logger.log_stage_skipped(stage, chapter=chapter_index)
        if self._callback is not None:
            self._callback(event)

    def record(self, result: StageResult[_Value]) -> _Value:
        """Remember the credential index behind `result` and return its value."""

        self.last_index_used = result.index_used
        return result.value


class GenerationOrchestrator:
    """Coordinate generation stages for one client session.

    At most one generation-type operation (main run, enrichment, or clear) is in
    flight per instance; a concurrent request is rejected with
    `AlreadyRunningError` rather than queued.
    """

    def __init__(
        self,
        *,
        store: ResumableStore,
        adapter: ProviderCallAdapter,
        credentials: Sequence[str],
        options: GenerationOptions | None = None,
        sleeper: Callable[[float], None] = time.sleep,
        run_logger: RunLogger | None = None,
    ) -> None:
        self._store = store
        self._adapter = adapter
        self._credentials = tuple(credentials)
        self._options = options if options is not None else GenerationOptions()
        self._sleeper = sleeper
        self._run_logger = run_logger
        self._runner = OperationRunner(run_logger=run_logger)
        # Reentrant: a SIGINT handler calling `cancel_generation` can interrupt
        # the main thread while it holds this lock.
        self._state_lock = threading.RLock()
        self._state = RunnerState.IDLE
        self._phase = RunPhase.IDLE

    @property
    def state(self) -> RunnerState:
        with self._state_lock:
            return self._state

    @property
    def phase(self) -> RunPhase:
        return self._phase

    def start_generation(
        self,
        topic: str,
        language: str,
        options: GenerationOptions | None = None,
        force_new: bool = False,
        progress_callback: ProgressCallback | None = None,
    ) -> GenerationOutcome:
        """Generate (or resume) every chapter of `topic`.

        Returns:
            Outcome with status `done` or `cancelled` and every emitted event.

        Raises:
            CredentialsRequiredError: No credentials were configured.
            InvalidTopicError: `topic` is blank.
            AlreadyRunningError: Another operation holds the single-flight lock.
            GenerationError: Any stage or storage failure; the run ends `failed`
                and already-persisted artifacts are kept.
        """

        self._require_credentials()
        normalized_topic = self._require_topic(topic)
        run_options = options if options is not None else self._options
        run_options.validate()

        self._acquire()
        context = _RunContext(progress_callback, self._run_logger)
        try:
            pool = self._load_pool()
            return self._run_topic(
                topic=normalized_topic,
                language=language,
                options=run_options,
                force_new=force_new,
                pool=pool,
                context=context,
            )
        except _RunCancelled:
            return self._finish_cancelled(normalized_topic, context)
        except Exception as exc:
            self._fail(context, exc)
            raise
        finally:
            self._release()

    def cancel_generation(self) -> bool:
        """Request cooperative cancellation; return whether a run was in flight."""

        with self._state_lock:
            if self._state is RunnerState.RUNNING:
                self._state = RunnerState.CANCELLING
                return True
            return False

    def generate_enrichment(
        self,
        topic: str,
        chapter_index: int,
        language: str,
        progress_callback: ProgressCallback | None = None,
    ) -> GenerationOutcome:
        """Generate the podcast script and then the audio for one chapter.

        Each artifact is generated only when absent and persisted immediately.

        Raises:
            InvalidTopicError: `topic` is blank or has no stored outline.
            ChapterNotReadyError: `chapter_index` is out of range or has no content.
        """

        self._require_credentials()
        normalized_topic = self._require_topic(topic)
        self._acquire()
        context = _RunContext(progress_callback, self._run_logger)
        try:
            pool = self._load_pool()
            return self._run_enrichment(normalized_topic, chapter_index, language, pool, context)
        except _RunCancelled:
            return self._finish_cancelled(normalized_topic, context)
        except Exception as exc:
            self._fail(context, exc)
            raise
        finally:
            self._release()

    def clear_topic(self, topic: str) -> None:
        """Discard every stored artifact for `topic`."""

        normalized_topic = self._require_topic(topic)
        self._acquire()
        try:
            self._store.clear(normalized_topic)
        finally:
            self._release()

    def describe_topic(self, topic: str) -> ResumePoint:
        """Recompute where a run for `topic` would continue."""

        normalized_topic = self._require_topic(topic)
        return detect_resume_point(
            normalized_topic,
            load_theory(self._store, normalized_topic),
            load_flashcards(self._store, normalized_topic),
            load_quiz(self._store, normalized_topic),
        )

    def _run_topic(
        self,
        *,
        topic: str,
        language: str,
        options: GenerationOptions,
        force_new: bool,
        pool: CredentialPool,
        context: _RunContext,
    ) -> GenerationOutcome:
        stages = self._build_stages(pool, options)
        self._log_run_state("start", topic=topic, force_new=force_new)

        theory = None if force_new else load_theory(self._store, topic)
        if theory is None or not theory.outline:
            self._phase = RunPhase.OUTLINE_PENDING
            self._store.clear(topic)
            context.emit("outline", None, "started")
            outline = context.record(stages.outline.generate(topic, language))
            theory = TheorySet.from_outline(topic, outline)
            flashcards = FlashcardSet(topic=topic)
            quiz = QuizSet(topic=topic)
            save_theory(self._store, theory)
            save_flashcards(self._store, flashcards)
            save_quiz(self._store, quiz)
            save_credential_index(self._store, context.last_index_used)
            context.emit("outline", None, "completed", detail=f"{len(theory.chapters)} chapters")
        else:
            flashcards = load_flashcards(self._store, topic) or FlashcardSet(topic=topic)
            quiz = load_quiz(self._store, topic) or QuizSet(topic=topic)
            context.emit("outline", None, "skipped", detail=f"{len(theory.chapters)} chapters")

        last_index = len(theory.chapters) - 1
        for index in range(len(theory.chapters)):
            self._checkpoint()
            theory, flashcards, quiz = self._process_chapter(
                index=index,
                topic=topic,
                language=language,
                options=options,
                stages=stages,
                theory=theory,
                flashcards=flashcards,
                quiz=quiz,
                context=context,
            )
            if context.last_index_used is not None:
                save_credential_index(self._store, context.last_index_used)
            if index < last_index and options.chapter_pause_seconds > 0:
                self._checkpoint()
                self._sleeper(options.chapter_pause_seconds)

        self._phase = RunPhase.DONE
        context.emit("run", None, "done")
        point = self.describe_topic(topic)
        self._log_run_state("done", topic=topic, chapters=_completed_chapters(point))
        return GenerationOutcome(
            topic=topic,
            status="done",
            events=tuple(context.events),
            chapters_total=len(point.chapters),
            chapters_completed=_completed_chapters(point),
        )

    def _process_chapter(
        self,
        *,
        index: int,
        topic: str,
        language: str,
        options: GenerationOptions,
        stages: _StageSet,
        theory: TheorySet,
        flashcards: FlashcardSet,
        quiz: QuizSet,
        context: _RunContext,
    ) -> tuple[TheorySet, FlashcardSet, QuizSet]:
        """Run the content, flashcard, and quiz stages for one chapter."""

        chapter = theory.chapters[index]

        self._phase = RunPhase.CONTENT_PENDING
        if chapter.has_content:
            context.emit("content", index, "skipped")
        else:
            context.emit("content", index, "started")
            content = self._run_chapter_stage(
                "content",
                index,
                options,
                context,
                lambda: stages.content.generate(topic, chapter.title, language),
            )
            chapter = replace(chapter, content=content)
            theory = theory.with_chapter(index, chapter)
            save_theory(self._store, theory)
            context.emit("content", index, "completed")

        self._checkpoint()
        self._phase = RunPhase.ENRICHMENT_PENDING
        if flashcards.has_chapter(chapter.chapter_id):
            context.emit("flashcards", index, "skipped")
        else:
            context.emit("flashcards", index, "started")
            existing_fronts = [card.front for card in flashcards.cards]
            generated_cards = self._run_chapter_stage(
                "flashcards",
                index,
                options,
                context,
                lambda: stages.flashcards.generate(
                    topic=topic,
                    chapter_title=chapter.title,
                    chapter_content=chapter.content or "",
                    language=language,
                    count=options.flashcards_per_chapter,
                    existing_fronts=existing_fronts,
                ),
            )
            if generated_cards:
                flashcards = flashcards.appended(
                    [
                        Flashcard(
                            front=item.front.strip(),
                            back=item.back.strip(),
                            source_chapter_id=chapter.chapter_id,
                            source_chapter=chapter.title,
                        )
                        for item in generated_cards
                    ]
                )
                save_flashcards(self._store, flashcards)
            context.emit("flashcards", index, "completed", detail=f"{len(generated_cards)} cards")

        self._checkpoint()
        if quiz.has_chapter(chapter.chapter_id):
            context.emit("quiz", index, "skipped")
        else:
            context.emit("quiz", index, "started")
            existing_questions = [question.question for question in quiz.questions]
            generated_questions = self._run_chapter_stage(
                "quiz",
                index,
                options,
                context,
                lambda: stages.quiz.generate(
                    topic=topic,
                    chapter_title=chapter.title,
                    chapter_content=chapter.content or "",
                    language=language,
                    count=options.quiz_questions_per_chapter,
                    existing_questions=existing_questions,
                ),
            )
            if generated_questions:
                quiz = quiz.appended(
                    [
                        QuizQuestion(
                            question=item.question.strip(),
                            options=tuple(item.options),
                            answer=item.answer,
                            explanation=item.explanation.strip(),
                            source_chapter_id=chapter.chapter_id,
                            source_chapter=chapter.title,
                        )
                        for item in generated_questions
                    ]
                )
                save_quiz(self._store, quiz)
            context.emit(
                "quiz", index, "completed", detail=f"{len(generated_questions)} questions"
            )

        return theory, flashcards, quiz

    def _run_chapter_stage(
        self,
        stage: str,
        index: int,
        options: GenerationOptions,
        context: _RunContext,
        call: Callable[[], StageResult[_Value]],
    ) -> _Value:
        """Run one chapter stage, retrying unclassified provider failures with linear backoff."""

        attempt = 1
        while True:
            try:
                return context.record(call())
            except OperationFailedError as exc:
                if attempt >= options.max_stage_attempts:
                    raise
                context.emit(
                    stage,
                    index,
                    "retrying",
                    detail=f"attempt {attempt + 1}/{options.max_stage_attempts}: {exc.detail}",
                )
                self._checkpoint()
                if options.retry_backoff_seconds > 0:
                    self._sleeper(options.retry_backoff_seconds * attempt)
            attempt += 1

    def _run_enrichment(
        self,
        topic: str,
        chapter_index: int,
        language: str,
        pool: CredentialPool,
        context: _RunContext,
    ) -> GenerationOutcome:
        theory = load_theory(self._store, topic)
        if theory is None or not theory.outline:
            raise InvalidTopicError(
                stage="podcast",
                detail=f'No outline is stored for topic "{topic}".',
                hint="Run a generation for this topic first.",
            )
        if not 0 <= chapter_index < len(theory.chapters):
            raise ChapterNotReadyError(
                stage="podcast",
                detail=f"Chapter index {chapter_index} is outside the outline (0-{len(theory.chapters) - 1}).",
                hint="Pick a chapter listed by the `status` command.",
            )
        chapter = theory.chapters[chapter_index]
        if not chapter.has_content:
            raise ChapterNotReadyError(
                stage="podcast",
                detail=f'Chapter "{chapter.title}" has no theory content yet.',
                hint="Resume the main generation before creating a podcast.",
            )

        stages = self._build_stages(pool, self._options)
        self._log_run_state("enrichment", topic=topic, chapter=chapter_index)

        self._phase = RunPhase.SCRIPT_PENDING
        if chapter.podcast_script:
            context.emit("podcast_script", chapter_index, "skipped")
        else:
            context.emit("podcast_script", chapter_index, "started")
            script = context.record(
                stages.podcast_script.generate(
                    topic=topic,
                    chapter_title=chapter.title,
                    chapter_content=chapter.content or "",
                    language=language,
                )
            )
            chapter = replace(chapter, podcast_script=script)
            theory = theory.with_chapter(chapter_index, chapter)
            save_theory(self._store, theory)
            save_credential_index(self._store, context.last_index_used)
            context.emit("podcast_script", chapter_index, "completed")

        self._checkpoint()
        self._phase = RunPhase.AUDIO_PENDING
        if chapter.audio_ref:
            context.emit("audio", chapter_index, "skipped")
        else:
            context.emit("audio", chapter_index, "started")
            audio = context.record(stages.audio.generate(chapter.podcast_script or ""))
            chapter = replace(chapter, audio_ref=audio)
            theory = theory.with_chapter(chapter_index, chapter)
            save_theory(self._store, theory)
            save_credential_index(self._store, context.last_index_used)
            context.emit("audio", chapter_index, "completed")

        self._phase = RunPhase.DONE
        context.emit("run", chapter_index, "done")
        return GenerationOutcome(
            topic=topic,
            status="done",
            events=tuple(context.events),
            chapters_total=len(theory.chapters),
            chapters_completed=1,
        )

    def _build_stages(self, pool: CredentialPool, options: GenerationOptions) -> _StageSet:
        shared = {"adapter": self._adapter, "pool": pool, "runner": self._runner}
        return _StageSet(
            outline=OutlineGenerator(model=options.text_model, **shared),
            content=ChapterContentGenerator(model=options.text_model, **shared),
            flashcards=FlashcardGenerator(model=options.text_model, **shared),
            quiz=QuizGenerator(
                model=options.text_model,
                max_answer_attempts=options.max_quiz_answer_attempts,
                **shared,
            ),
            podcast_script=PodcastScriptGenerator(model=options.text_model, **shared),
            audio=AudioGenerator(model=options.tts_model, **shared),
        )

    def _require_credentials(self) -> None:
        if CredentialPool(self._credentials).size() == 0:
            raise CredentialsRequiredError()

    def _load_pool(self) -> CredentialPool:
        return CredentialPool(self._credentials, start_index=load_credential_index(self._store))

    @staticmethod
    def _require_topic(topic: str) -> str:
        normalized = normalize_optional_string(topic)
        if normalized is None:
            raise InvalidTopicError(
                stage="topic",
                detail="Topic must not be blank.",
                hint="Enter a topic to learn about.",
            )
        return normalized

    def _acquire(self) -> None:
        with self._state_lock:
            if self._state is not RunnerState.IDLE:
                raise AlreadyRunningError()
            self._state = RunnerState.RUNNING

    def _release(self) -> None:
        with self._state_lock:
            self._state = RunnerState.IDLE

    def _checkpoint(self) -> None:
        with self._state_lock:
            cancelling = self._state is RunnerState.CANCELLING
        if cancelling:
            raise _RunCancelled()

    def _finish_cancelled(self, topic: str, context: _RunContext) -> GenerationOutcome:
        self._phase = RunPhase.CANCELLED
        context.emit("run", None, "cancelled")
        self._log_run_state("cancelled", topic=topic)
        point = self.describe_topic(topic)
        return GenerationOutcome(
            topic=topic,
            status="cancelled",
            events=tuple(context.events),
            chapters_total=len(point.chapters),
            chapters_completed=_completed_chapters(point),
        )

    def _fail(self, context: _RunContext, exc: Exception) -> None:
        self._phase = RunPhase.FAILED
        if isinstance(exc, GenerationError):
            stage, reason = exc.stage, f"{exc.code}: {exc.detail}"
        else:
            stage, reason = "run", f"{type(exc).__name__}: {exc}"
        if self._run_logger is not None:
            self._run_logger.log_stage_failure(stage, type(exc).__name__)
        context.emit("run", None, "failed", detail=reason)

    def _log_run_state(self, state: str, **context: object) -> None:
        if self._run_logger is not None:
            self._run_logger.log_run_state(state, **context)


def _completed_chapters(point: ResumePoint) -> int:
    """Count chapters whose content, flashcards, and quiz are all stored."""

    return sum(1 for row in point.chapters if row.next_stage is None)
