"""Unit tests for CLI rendering helpers."""

import pytest
import typer

from lessonloom.cli_rendering import (
    ProgressPrinter,
    echo_outcome_summary,
    echo_resume_point,
    exit_with_command_error,
)
from lessonloom.errors import ChapterNotReadyError
from lessonloom.models.datatypes import GenerationOutcome, ProgressEvent
from lessonloom.pipeline.resume import ChapterStatus, ResumePoint


def test_progress_printer_uses_one_based_chapters(capsys: pytest.CaptureFixture[str]) -> None:
    printer = ProgressPrinter(command_name="generate")

    printer(ProgressEvent(stage="outline", chapter_index=None, status="completed", detail="3 chapters"))
    printer(ProgressEvent(stage="quiz", chapter_index=0, status="started"))

    assert capsys.readouterr().out.splitlines() == [
        "[progress] command=generate chapter=- stage=outline status=completed detail=3 chapters",
        "[progress] command=generate chapter=1 stage=quiz status=started",
    ]


def test_outcome_summary(capsys: pytest.CaptureFixture[str]) -> None:
    echo_outcome_summary(
        GenerationOutcome(topic="Roman History", status="cancelled", events=(), chapters_total=3, chapters_completed=1)
    )

    assert capsys.readouterr().out.splitlines() == [
        "Topic: Roman History",
        "Status: cancelled",
        "Chapters: 1/3",
    ]


def test_resume_point_rows(capsys: pytest.CaptureFixture[str]) -> None:
    row = ChapterStatus(
        index=0,
        chapter_id="001-kings",
        title="Kings",
        has_content=True,
        card_count=5,
        question_count=0,
        has_podcast_script=False,
        has_audio=False,
    )
    echo_resume_point(
        ResumePoint(topic="Roman History", has_outline=True, chapter_index=0, stage="quiz", chapters=(row,))
    )

    output = capsys.readouterr().out
    assert "1. Kings content=yes cards=5 quiz=0 podcast=no audio=no" in output
    assert "Next stage: quiz (chapter 1)" in output


def test_exit_with_command_error_prints_stage_and_hint(capsys: pytest.CaptureFixture[str]) -> None:
    error = ChapterNotReadyError(stage="podcast", detail="No content yet.", hint="Resume first.")

    with pytest.raises(typer.Exit) as exc_info:
        exit_with_command_error("podcast", error)

    assert exc_info.value.exit_code == 1
    stderr = capsys.readouterr().err
    assert "podcast failed at stage `podcast`: No content yet." in stderr
    assert "Hint: Resume first." in stderr
