"""Integration tests for resumable topic generation runs."""

from __future__ import annotations

import threading

import pytest

from lessonloom.errors import (
    AllCredentialsExhaustedError,
    AlreadyRunningError,
    ChapterNotReadyError,
    CredentialsRequiredError,
    InvalidFormatError,
    InvalidTopicError,
    OperationFailedError,
)
from lessonloom.io.storage import FileResumableStore
from lessonloom.llm.provider_adapter import FailureKind, ProviderCallFailure
from lessonloom.pipeline.artifacts import (
    load_credential_index,
    load_flashcards,
    load_quiz,
    load_theory,
)
from lessonloom.pipeline.orchestrator import GenerationOptions, RunnerState, RunPhase


def _quota() -> ProviderCallFailure:
    return ProviderCallFailure(FailureKind.QUOTA, "HTTP 429 quota exhausted")


def _invalid_key() -> ProviderCallFailure:
    return ProviderCallFailure(FailureKind.INVALID_CREDENTIAL, "HTTP 400 API key not valid")


def test_fresh_run_generates_every_chapter(make_orchestrator, memory_store, scripted_provider, sleeper) -> None:
    """A fresh topic should produce content, cards, and quiz for every chapter in order."""

    orchestrator = make_orchestrator()
    events = []

    outcome = orchestrator.start_generation("Roman History", "English", progress_callback=events.append)

    assert outcome.status == "done"
    assert outcome.chapters_total == 3
    assert outcome.chapters_completed == 3
    assert orchestrator.phase is RunPhase.DONE
    assert orchestrator.state is RunnerState.IDLE

    theory = load_theory(memory_store, "Roman History")
    assert theory is not None
    assert theory.outline == ("Foundations", "Growth", "Legacy")
    assert [chapter.chapter_id for chapter in theory.chapters] == [
        "001-foundations",
        "002-growth",
        "003-legacy",
    ]
    assert all(chapter.has_content for chapter in theory.chapters)
    assert all(chapter.podcast_script is None for chapter in theory.chapters)

    flashcards = load_flashcards(memory_store, "Roman History")
    quiz = load_quiz(memory_store, "Roman History")
    assert flashcards is not None and quiz is not None
    assert len(flashcards.cards) == 15
    assert len(quiz.questions) == 12
    assert {card.source_chapter_id for card in flashcards.cards} == {
        "001-foundations",
        "002-growth",
        "003-legacy",
    }
    assert flashcards.cards[0].source_chapter == "Foundations"

    assert scripted_provider.count("outline") == 1
    assert scripted_provider.count("content") == 3
    assert sleeper.pauses == [1.0, 1.0]
    assert events == list(outcome.events)
    assert events[0].stage == "outline" and events[0].status == "started"
    assert events[-1].stage == "run" and events[-1].status == "done"


def test_stage_order_is_content_flashcards_quiz_per_chapter(make_orchestrator, scripted_provider) -> None:
    make_orchestrator().start_generation("Roman History", "English")

    kinds = [kind for kind, _, _ in scripted_provider.calls]
    assert kinds == [
        "outline",
        "content",
        "flashcards",
        "quiz",
        "content",
        "flashcards",
        "quiz",
        "content",
        "flashcards",
        "quiz",
    ]


def test_existing_items_are_passed_into_later_prompts(make_orchestrator, scripted_provider) -> None:
    """Later chapters should see earlier cards and questions to avoid duplicates."""

    make_orchestrator().start_generation("Roman History", "English")

    second_flashcards_prompt = scripted_provider.prompts("flashcards")[1]
    second_quiz_prompt = scripted_provider.prompts("quiz")[1]
    assert '"Foundations card 1"' in second_flashcards_prompt
    assert '"Foundations question 4"' in second_quiz_prompt
    assert "already exist" not in scripted_provider.prompts("flashcards")[0]


def test_failed_run_resumes_without_repeating_work(make_orchestrator, memory_store, scripted_provider) -> None:
    """Interrupted runs should continue at the first missing artifact."""

    scripted_provider.fail_next(
        "content",
        ProviderCallFailure(FailureKind.UNKNOWN, "connection reset"),
        title="Growth",
        times=3,
    )
    orchestrator = make_orchestrator()
    events = []

    with pytest.raises(OperationFailedError) as exc_info:
        orchestrator.start_generation("Roman History", "English", progress_callback=events.append)

    assert exc_info.value.stage == "content"
    assert orchestrator.phase is RunPhase.FAILED
    assert orchestrator.state is RunnerState.IDLE
    assert events[-1].status == "failed"
    assert events[-1].detail is not None and "operation_failed" in events[-1].detail

    point = orchestrator.describe_topic("Roman History")
    assert point.has_outline is True
    assert point.chapter_index == 1
    assert point.stage == "content"

    outcome = orchestrator.start_generation("Roman History", "English")

    assert outcome.status == "done"
    assert scripted_provider.count("outline") == 1
    assert scripted_provider.count("content") == 6
    assert scripted_provider.count("flashcards") == 3
    assert scripted_provider.count("quiz") == 3
    assert orchestrator.describe_topic("Roman History").is_complete is True
    skipped = [event for event in outcome.events if event.status == "skipped"]
    assert [(event.stage, event.chapter_index) for event in skipped] == [
        ("outline", None),
        ("content", 0),
        ("flashcards", 0),
        ("quiz", 0),
    ]


def test_completed_topic_rerun_makes_no_provider_calls(make_orchestrator, memory_store, scripted_provider) -> None:
    orchestrator = make_orchestrator()
    orchestrator.start_generation("Roman History", "English")
    calls_after_first_run = len(scripted_provider.calls)
    stored_cards = load_flashcards(memory_store, "Roman History")

    outcome = orchestrator.start_generation("Roman History", "English")

    assert outcome.status == "done"
    assert len(scripted_provider.calls) == calls_after_first_run
    assert load_flashcards(memory_store, "Roman History") == stored_cards


def test_force_new_discards_previous_artifacts(make_orchestrator, memory_store, scripted_provider) -> None:
    orchestrator = make_orchestrator()
    orchestrator.start_generation("Roman History", "English")
    scripted_provider.outline = ["Republic", "Empire"]

    outcome = orchestrator.start_generation("Roman History", "English", force_new=True)

    assert outcome.chapters_total == 2
    theory = load_theory(memory_store, "Roman History")
    assert theory is not None and theory.outline == ("Republic", "Empire")
    flashcards = load_flashcards(memory_store, "Roman History")
    assert flashcards is not None
    assert {card.source_chapter_id for card in flashcards.cards} == {"001-republic", "002-empire"}


def test_force_new_clears_topic_before_outline_call(make_orchestrator, memory_store, scripted_provider) -> None:
    """A reset whose outline call fails should leave the topic empty, not half old."""

    orchestrator = make_orchestrator()
    orchestrator.start_generation("Roman History", "English")
    scripted_provider.fail_next("outline", ProviderCallFailure(FailureKind.UNKNOWN, "boom"))

    with pytest.raises(OperationFailedError):
        orchestrator.start_generation("Roman History", "English", force_new=True)

    assert load_theory(memory_store, "Roman History") is None
    assert load_flashcards(memory_store, "Roman History") is None
    assert load_quiz(memory_store, "Roman History") is None
    assert orchestrator.describe_topic("Roman History").stage == "outline"


def test_quota_failure_rotates_and_persists_index(
    make_orchestrator, memory_store, scripted_provider
) -> None:
    scripted_provider.fail_next("outline", _quota())

    make_orchestrator().start_generation("Roman History", "English")

    used = scripted_provider.credentials_used()
    assert used[0] == "key-a"
    assert set(used[1:]) == {"key-b"}
    assert load_credential_index(memory_store) == 1

    next_orchestrator = make_orchestrator()
    next_orchestrator.start_generation("Greek History", "English")
    assert scripted_provider.credentials_used()[len(used)] == "key-b"


def test_all_credentials_exhausted_fails_run(make_orchestrator, memory_store, scripted_provider) -> None:
    scripted_provider.fail_next("outline", _quota())
    scripted_provider.fail_next("outline", _invalid_key())
    orchestrator = make_orchestrator()
    events = []

    with pytest.raises(AllCredentialsExhaustedError) as exc_info:
        orchestrator.start_generation("Roman History", "English", progress_callback=events.append)

    assert exc_info.value.dominant_failure == "mixed"
    assert exc_info.value.attempts == 2
    assert scripted_provider.count("outline") == 2
    assert orchestrator.phase is RunPhase.FAILED
    assert events[-1].stage == "run" and events[-1].status == "failed"
    assert load_theory(memory_store, "Roman History") is None


def test_malformed_output_does_not_rotate(make_orchestrator, scripted_provider) -> None:
    scripted_provider.fail_next(
        "outline",
        ProviderCallFailure(FailureKind.MALFORMED_OUTPUT, "Expecting value: line 1 column 1"),
    )

    with pytest.raises(InvalidFormatError):
        make_orchestrator().start_generation("Roman History", "English")

    assert scripted_provider.count("outline") == 1
    assert scripted_provider.credentials_used() == ["key-a"]


def test_flashcard_failure_aborts_run_but_keeps_content(
    make_orchestrator, memory_store, scripted_provider
) -> None:
    scripted_provider.fail_next(
        "flashcards",
        ProviderCallFailure(FailureKind.MALFORMED_OUTPUT, "bad json"),
        title="Foundations",
    )

    with pytest.raises(InvalidFormatError):
        make_orchestrator().start_generation("Roman History", "English")

    theory = load_theory(memory_store, "Roman History")
    assert theory is not None
    assert theory.chapters[0].has_content is True
    assert theory.chapters[1].has_content is False
    assert scripted_provider.count("quiz") == 0
    assert scripted_provider.count("flashcards") == 1


def test_zero_flashcards_are_tolerated_and_requested_again(
    make_orchestrator, memory_store, scripted_provider
) -> None:
    scripted_provider.cards_per_call = 0
    orchestrator = make_orchestrator()

    outcome = orchestrator.start_generation("Roman History", "English")

    assert outcome.status == "done"
    assert outcome.chapters_total == 3
    assert outcome.chapters_completed == 0
    assert outcome.chapters_completed == sum(
        1 for row in orchestrator.describe_topic("Roman History").chapters if row.next_stage is None
    )
    flashcards = load_flashcards(memory_store, "Roman History")
    assert flashcards is not None and flashcards.cards == ()
    quiz = load_quiz(memory_store, "Roman History")
    assert quiz is not None and len(quiz.questions) == 12

    orchestrator.start_generation("Roman History", "English")
    assert scripted_provider.count("flashcards") == 6
    assert scripted_provider.count("quiz") == 3


def test_reentrant_start_is_rejected_while_running(make_orchestrator) -> None:
    orchestrator = make_orchestrator()
    rejected: list[AlreadyRunningError] = []

    def _callback(event) -> None:
        if event.stage == "outline" and event.status == "started":
            try:
                orchestrator.start_generation("Greek History", "English")
            except AlreadyRunningError as exc:
                rejected.append(exc)

    outcome = orchestrator.start_generation("Roman History", "English", progress_callback=_callback)

    assert outcome.status == "done"
    assert len(rejected) == 1
    assert rejected[0].code == "already_running"


def test_cancel_stops_at_next_checkpoint(make_orchestrator, memory_store, scripted_provider) -> None:
    orchestrator = make_orchestrator()
    assert orchestrator.cancel_generation() is False

    def _callback(event) -> None:
        if event.stage == "content" and event.status == "completed":
            assert orchestrator.cancel_generation() is True

    outcome = orchestrator.start_generation("Roman History", "English", progress_callback=_callback)

    assert outcome.status == "cancelled"
    assert outcome.events[-1].status == "cancelled"
    assert orchestrator.phase is RunPhase.CANCELLED
    assert orchestrator.state is RunnerState.IDLE
    assert scripted_provider.count("flashcards") == 0
    theory = load_theory(memory_store, "Roman History")
    assert theory is not None and theory.chapters[0].has_content is True

    resumed = orchestrator.start_generation("Roman History", "English")
    assert resumed.status == "done"
    assert scripted_provider.count("content") == 3


def test_entry_guards_reject_before_any_provider_call(make_orchestrator, scripted_provider) -> None:
    with pytest.raises(CredentialsRequiredError):
        make_orchestrator(credentials=()).start_generation("Roman History", "English")
    with pytest.raises(CredentialsRequiredError):
        make_orchestrator(credentials=("  ",)).start_generation("Roman History", "English")
    with pytest.raises(InvalidTopicError):
        make_orchestrator().start_generation("   ", "English")

    assert scripted_provider.calls == []


def test_options_override_counts_and_pause(make_orchestrator, memory_store, sleeper) -> None:
    options = GenerationOptions(
        flashcards_per_chapter=2,
        quiz_questions_per_chapter=1,
        chapter_pause_seconds=0.0,
    )

    make_orchestrator().start_generation("Roman History", "English", options=options)

    flashcards = load_flashcards(memory_store, "Roman History")
    quiz = load_quiz(memory_store, "Roman History")
    assert flashcards is not None and len(flashcards.cards) == 6
    assert quiz is not None and len(quiz.questions) == 3
    assert sleeper.pauses == []


def test_enrichment_generates_script_then_audio_once(
    make_orchestrator, memory_store, scripted_provider
) -> None:
    orchestrator = make_orchestrator()
    orchestrator.start_generation("Roman History", "English")

    outcome = orchestrator.generate_enrichment("Roman History", 1, "English")

    assert outcome.status == "done"
    assert orchestrator.phase is RunPhase.DONE
    chapter = load_theory(memory_store, "Roman History").chapters[1]
    assert chapter.podcast_script == "Host: Welcome to Growth!\nExpert: Glad to be here."
    assert chapter.audio_ref is not None and chapter.audio_ref.startswith("data:audio/wav;base64,")
    assert scripted_provider.count("podcast_script") == 1
    assert scripted_provider.count("audio") == 1
    audio_request = [request for kind, _, request in scripted_provider.calls if kind == "audio"][0]
    assert audio_request.speakers == {"Host": "Algenib", "Expert": "Achernar"}
    assert "Host: Welcome to Growth!" in audio_request.prompt

    again = orchestrator.generate_enrichment("Roman History", 1, "English")
    assert [event.status for event in again.events[:2]] == ["skipped", "skipped"]
    assert scripted_provider.count("podcast_script") == 1
    assert scripted_provider.count("audio") == 1


def test_audio_failure_keeps_generated_script(make_orchestrator, memory_store, scripted_provider) -> None:
    orchestrator = make_orchestrator()
    orchestrator.start_generation("Roman History", "English")
    scripted_provider.fail_next("audio", _quota())
    scripted_provider.fail_next("audio", _quota())

    with pytest.raises(AllCredentialsExhaustedError) as exc_info:
        orchestrator.generate_enrichment("Roman History", 0, "English")

    assert exc_info.value.stage == "audio"
    assert exc_info.value.dominant_failure == "quota"
    chapter = load_theory(memory_store, "Roman History").chapters[0]
    assert chapter.podcast_script is not None
    assert chapter.audio_ref is None


def test_enrichment_requires_stored_chapter_content(make_orchestrator, scripted_provider) -> None:
    orchestrator = make_orchestrator()

    with pytest.raises(InvalidTopicError):
        orchestrator.generate_enrichment("Roman History", 0, "English")

    scripted_provider.fail_next(
        "content", ProviderCallFailure(FailureKind.UNKNOWN, "boom"), title="Growth", times=3
    )
    with pytest.raises(OperationFailedError):
        orchestrator.start_generation("Roman History", "English")

    with pytest.raises(ChapterNotReadyError):
        orchestrator.generate_enrichment("Roman History", 1, "English")
    with pytest.raises(ChapterNotReadyError):
        orchestrator.generate_enrichment("Roman History", 7, "English")
    assert orchestrator.state is RunnerState.IDLE


def test_clear_topic_only_touches_that_topic(make_orchestrator, memory_store) -> None:
    orchestrator = make_orchestrator()
    orchestrator.start_generation("Roman History", "English")
    orchestrator.start_generation("Greek History", "English")

    orchestrator.clear_topic("Roman History")

    assert load_theory(memory_store, "Roman History") is None
    assert load_theory(memory_store, "Greek History") is not None
    assert load_credential_index(memory_store) == 0


def test_file_store_run_resumes_in_new_session(tmp_path, scripted_provider_class, sleeper) -> None:
    """A new process over the same data directory should pick up where the last stopped."""

    from lessonloom.pipeline.orchestrator import GenerationOrchestrator

    first_provider = scripted_provider_class()
    first_provider.fail_next(
        "quiz", ProviderCallFailure(FailureKind.UNKNOWN, "timeout"), title="Legacy", times=3
    )
    first = GenerationOrchestrator(
        store=FileResumableStore(tmp_path),
        adapter=first_provider,
        credentials=["key-a"],
        sleeper=sleeper,
    )
    with pytest.raises(OperationFailedError):
        first.start_generation("Roman History", "English")

    second_provider = scripted_provider_class()
    second = GenerationOrchestrator(
        store=FileResumableStore(tmp_path),
        adapter=second_provider,
        credentials=["key-a"],
        sleeper=sleeper,
    )
    outcome = second.start_generation("Roman History", "English")

    assert outcome.status == "done"
    assert [kind for kind, _, _ in second_provider.calls] == ["quiz"]
    point = second.describe_topic("Roman History")
    assert point.is_complete is True
    assert [row.question_count for row in point.chapters] == [4, 4, 4]


def test_chapter_is_stored_before_next_chapter_starts(
    make_orchestrator, memory_store, scripted_provider_class
) -> None:
    """The second chapter's content call must already see the first chapter persisted."""

    observed = []

    class _StoreWatchingProvider(scripted_provider_class):
        def call(self, credential, request):  # type: ignore[no-untyped-def]
            if self.kind_of(request) == "content" and self._title_of(request.prompt) == "Punic Wars":
                observed.append(
                    (
                        load_theory(memory_store, "Roman History"),
                        load_flashcards(memory_store, "Roman History"),
                        load_quiz(memory_store, "Roman History"),
                    )
                )
            return super().call(credential, request)

    provider = _StoreWatchingProvider(outline=("Founding", "Punic Wars"))

    outcome = make_orchestrator(adapter=provider).start_generation("Roman History", "English")

    assert outcome.status == "done"
    assert len(observed) == 1
    theory, flashcards, quiz = observed[0]
    assert theory.outline == ("Founding", "Punic Wars")
    assert theory.chapters[0].content == "## Founding\n\nTheory about Founding."
    assert theory.chapters[1].has_content is False
    assert flashcards.has_chapter("001-founding") is True
    assert quiz.has_chapter("001-founding") is True


def test_force_new_leaves_other_topics_untouched(make_orchestrator, memory_store, scripted_provider) -> None:
    orchestrator = make_orchestrator()
    orchestrator.start_generation("Roman History", "English")
    orchestrator.start_generation("Greek History", "English")
    greek_before = (
        load_theory(memory_store, "Greek History"),
        load_flashcards(memory_store, "Greek History"),
        load_quiz(memory_store, "Greek History"),
    )
    scripted_provider.outline = ["Republic", "Empire"]

    orchestrator.start_generation("Roman History", "English", force_new=True)

    assert load_theory(memory_store, "Roman History").outline == ("Republic", "Empire")
    assert (
        load_theory(memory_store, "Greek History"),
        load_flashcards(memory_store, "Greek History"),
        load_quiz(memory_store, "Greek History"),
    ) == greek_before


def test_unclassified_chapter_failure_is_retried_with_backoff(
    make_orchestrator, scripted_provider, sleeper
) -> None:
    scripted_provider.fail_next(
        "content",
        ProviderCallFailure(FailureKind.UNKNOWN, "connection reset"),
        title="Growth",
        times=2,
    )
    options = GenerationOptions(chapter_pause_seconds=0.0, retry_backoff_seconds=2.0)

    outcome = make_orchestrator().start_generation("Roman History", "English", options=options)

    assert outcome.status == "done"
    assert scripted_provider.count("content") == 5
    retries = [event for event in outcome.events if event.status == "retrying"]
    assert [(event.stage, event.chapter_index) for event in retries] == [("content", 1), ("content", 1)]
    assert sleeper.pauses == [2.0, 4.0]


def test_exhausted_credentials_are_not_retried_per_stage(make_orchestrator, scripted_provider) -> None:
    scripted_provider.fail_next("quiz", _quota(), title="Foundations", times=2)

    with pytest.raises(AllCredentialsExhaustedError):
        make_orchestrator().start_generation("Roman History", "English")

    assert scripted_provider.count("quiz") == 2


def test_invalid_retry_options_are_rejected(make_orchestrator, scripted_provider) -> None:
    with pytest.raises(ValueError):
        make_orchestrator().start_generation(
            "Roman History", "English", options=GenerationOptions(max_stage_attempts=0)
        )
    assert scripted_provider.calls == []


def test_cancel_while_state_lock_is_held_by_same_thread(make_orchestrator) -> None:
    """Signal handlers run on the thread that may already hold the state lock."""

    orchestrator = make_orchestrator()
    accepted: list[bool] = []
    outcomes = []

    def _callback(event) -> None:
        if event.stage == "content" and event.status == "completed" and not accepted:
            with orchestrator._state_lock:
                accepted.append(orchestrator.cancel_generation())

    worker = threading.Thread(
        target=lambda: outcomes.append(
            orchestrator.start_generation("Roman History", "English", progress_callback=_callback)
        ),
        daemon=True,
    )
    worker.start()
    worker.join(timeout=5)

    assert worker.is_alive() is False
    assert accepted == [True]
    assert outcomes[0].status == "cancelled"
    assert orchestrator.state is RunnerState.IDLE
