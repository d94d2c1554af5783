"""CLI output and error rendering helpers.

This module centralizes user-facing CLI presentation for command diagnostics,
progress events, run summaries, and topic status tables.
"""

from __future__ import annotations

from typing import NoReturn

import typer

from .errors import GenerationError
from .models.datatypes import GenerationOutcome, ProgressEvent
from .pipeline.resume import ResumePoint


def exit_with_command_error(command_name: str, exc: Exception) -> NoReturn:
    """Print concise diagnostics for command failures and exit with code 1."""

    if isinstance(exc, GenerationError):
        typer.secho(
            f"{command_name} failed at stage `{exc.stage}`: {exc.detail}",
            fg=typer.colors.RED,
            err=True,
        )
        if exc.hint:
            typer.secho(f"Hint: {exc.hint}", fg=typer.colors.YELLOW, err=True)
    else:
        typer.secho(f"{command_name} failed: {exc}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1) from exc


class ProgressPrinter:
    """Render one deterministic `[progress]` line per orchestrator event."""

    def __init__(self, command_name: str) -> None:
        self._command_name = command_name

    def __call__(self, event: ProgressEvent) -> None:
        chapter = "-" if event.chapter_index is None else str(event.chapter_index + 1)
        line = (
            f"[progress] command={self._command_name} chapter={chapter} "
            f"stage={event.stage} status={event.status}"
        )
        if event.detail:
            line += f" detail={event.detail}"
        typer.echo(line)


def echo_outcome_summary(outcome: GenerationOutcome) -> None:
    """Print topic, status, and chapter counts for a finished run."""

    typer.echo(f"Topic: {outcome.topic}")
    typer.echo(f"Status: {outcome.status}")
    typer.echo(f"Chapters: {outcome.chapters_completed}/{outcome.chapters_total}")


def echo_resume_point(point: ResumePoint) -> None:
    """Print stored artifact flags per chapter and the recomputed next stage."""

    typer.echo(f"Topic: {point.topic}")
    if not point.has_outline:
        typer.echo("Outline: not generated")
        typer.echo("Next stage: outline")
        return

    typer.echo(f"Outline: {len(point.chapters)} chapters")
    for row in point.chapters:
        typer.echo(
            f"{row.index + 1}. {row.title} "
            f"content={'yes' if row.has_content else 'no'} "
            f"cards={row.card_count} quiz={row.question_count} "
            f"podcast={'yes' if row.has_podcast_script else 'no'} "
            f"audio={'yes' if row.has_audio else 'no'}"
        )
    if point.is_complete:
        typer.echo("Next stage: none (complete)")
    else:
        typer.echo(f"Next stage: {point.stage} (chapter {point.chapter_index + 1})")
