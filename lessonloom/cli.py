"""Command-line interface for Lessonloom.

Responsibilities:
- Expose user-facing commands for generation, enrichment, and topic status.
- Convert CLI arguments into `LessonloomConfig` and wire the orchestrator.

Key public functions:
- `app`: Typer application instance.
- `main`: invoke the Typer application.
"""

from __future__ import annotations

import dataclasses
import os
import signal
from contextlib import contextmanager
from pathlib import Path
from typing import Annotated, Iterator

import typer

from .cli_rendering import (
    ProgressPrinter,
    echo_outcome_summary,
    echo_resume_point,
    exit_with_command_error,
)
from .cli_runtime import resolve_credential_runtime_sources
from .config import ConfigLoader, LessonloomConfig, RuntimeConfigSources
from .credentials import create_credential_store
from .errors import ConfigurationError
from .io.storage import FileResumableStore
from .pipeline import GenerationOrchestrator
from .provider_factory import ProviderFactory
from .telemetry.logger import RunLogger

app = typer.Typer(
    name="lessonloom",
    no_args_is_help=True,
    help="Lessonloom CLI: resumable topic-to-course generation.",
)


def _load_base_config(config_path: Path | None) -> LessonloomConfig:
    """Load YAML config when requested, else environment config, as stage errors."""

    try:
        if config_path is None:
            return ConfigLoader.from_env()
        return ConfigLoader.from_yaml(config_path)
    except FileNotFoundError as exc:
        raise ConfigurationError(
            stage="config",
            detail=f"Config file not found: `{config_path}`.",
            hint="Provide an existing path via `--config <path.yaml>`.",
        ) from exc
    except ValueError as exc:
        raise ConfigurationError(
            stage="config",
            detail=f"Invalid configuration: {exc}",
            hint="Fix config file or `LESSONLOOM_*` environment values and rerun.",
        ) from exc


def _resolve_command_config(
    config_file: Path | None,
    data_dir: Path | None,
    language: str | None = None,
    flashcards: int | None = None,
    quiz_questions: int | None = None,
    pause: float | None = None,
    runtime_sources: RuntimeConfigSources | None = None,
) -> LessonloomConfig:
    """Resolve effective command config from file/env defaults and explicit CLI overrides."""

    base = _load_base_config(config_file)
    overrides: dict[str, object] = {}
    if data_dir is not None:
        overrides["data_dir"] = data_dir
    if language is not None and language.strip():
        overrides["language"] = language.strip()
    if flashcards is not None:
        overrides["flashcards_per_chapter"] = flashcards
    if quiz_questions is not None:
        overrides["quiz_questions_per_chapter"] = quiz_questions
    if pause is not None:
        overrides["chapter_pause_seconds"] = pause
    if runtime_sources is not None:
        overrides["runtime_sources"] = runtime_sources
    config = dataclasses.replace(base, **overrides)
    try:
        config.validate()
    except ValueError as exc:
        raise ConfigurationError(
            stage="config",
            detail=f"Invalid option value: {exc}",
            hint="Check the numeric options passed on the command line.",
        ) from exc
    return config


def _build_orchestrator(
    config: LessonloomConfig,
    run_logger: RunLogger | None = None,
) -> GenerationOrchestrator:
    return GenerationOrchestrator(
        store=FileResumableStore(config.data_dir),
        adapter=ProviderFactory.create_adapter(config.provider, config.request_timeout_seconds),
        credentials=config.resolved_api_keys(),
        options=config.generation_options(),
        run_logger=run_logger,
    )


@contextmanager
def _cancel_on_interrupt(orchestrator: GenerationOrchestrator) -> Iterator[None]:
    """Map Ctrl-C to cooperative cancellation for the duration of a run.

    A second Ctrl-C, or one arriving when nothing is running, interrupts
    immediately.
    """

    def _handler(signum, frame) -> None:
        if not orchestrator.cancel_generation():
            raise KeyboardInterrupt
        typer.echo("Cancellation requested; press Ctrl-C again to abort.", err=True)

    try:
        previous = signal.signal(signal.SIGINT, _handler)
    except ValueError:
        # Not on the main thread; cancellation stays available programmatically.
        yield
        return
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


def _credential_sources(
    api_key: list[str] | None,
    prompt_api_key: bool,
    store_api_keys: bool,
) -> RuntimeConfigSources:
    runtime_cli_values, runtime_secure_values = resolve_credential_runtime_sources(
        api_keys=api_key,
        prompt_api_key=prompt_api_key,
        store_api_keys=store_api_keys,
        credential_store_factory=create_credential_store,
    )
    return RuntimeConfigSources(
        cli=runtime_cli_values,
        secure=runtime_secure_values,
        env=os.environ,
    )


ConfigOption = Annotated[
    Path | None,
    typer.Option("--config", help="Path to YAML config file with command defaults."),
]
DataDirOption = Annotated[
    Path | None,
    typer.Option("--data-dir", help="Directory for stored artifacts (overrides config)."),
]
ApiKeyOption = Annotated[
    list[str] | None,
    typer.Option(
        "--api-key",
        help=(
            "Gemini API key; repeat to build a rotation pool. "
            "Prefer `--prompt-api-key` to avoid shell history."
        ),
    ),
]
PromptApiKeyOption = Annotated[
    bool,
    typer.Option("--prompt-api-key", help="Prompt for API keys with hidden input (never echoed)."),
]
StoreApiKeysOption = Annotated[
    bool,
    typer.Option(
        "--store-api-keys/--no-store-api-keys",
        help="Persist CLI-entered API keys to secure credential storage.",
    ),
]


@app.command("generate")
def generate_command(
    topic: Annotated[str, typer.Argument(help="Topic to build a course for.")],
    language: Annotated[
        str | None,
        typer.Option("--language", help="Language of the generated material."),
    ] = None,
    force_new: Annotated[
        bool,
        typer.Option("--force-new", help="Discard stored artifacts and start over."),
    ] = False,
    api_key: ApiKeyOption = None,
    prompt_api_key: PromptApiKeyOption = False,
    store_api_keys: StoreApiKeysOption = True,
    config_file: ConfigOption = None,
    data_dir: DataDirOption = None,
    flashcards: Annotated[
        int | None,
        typer.Option("--flashcards", min=1, help="Flashcards per chapter."),
    ] = None,
    quiz_questions: Annotated[
        int | None,
        typer.Option("--quiz-questions", min=1, help="Quiz questions per chapter."),
    ] = None,
    pause: Annotated[
        float | None,
        typer.Option("--pause", min=0.0, help="Seconds to pause between chapters."),
    ] = None,
) -> None:
    """Generate (or resume) outline, theory, flashcards, and quizzes for a topic."""

    try:
        sources = _credential_sources(api_key, prompt_api_key, store_api_keys)
        config = _resolve_command_config(
            config_file=config_file,
            data_dir=data_dir,
            language=language,
            flashcards=flashcards,
            quiz_questions=quiz_questions,
            pause=pause,
            runtime_sources=sources,
        )
        orchestrator = _build_orchestrator(config, run_logger=RunLogger())
        with _cancel_on_interrupt(orchestrator):
            outcome = orchestrator.start_generation(
                topic,
                config.language,
                force_new=force_new,
                progress_callback=ProgressPrinter(command_name="generate"),
            )
    except Exception as exc:
        exit_with_command_error("generate", exc)

    echo_outcome_summary(outcome)
    typer.echo(f"Data directory: {config.data_dir}")


@app.command("podcast")
def podcast_command(
    topic: Annotated[str, typer.Argument(help="Topic whose chapter gets a podcast.")],
    chapter_number: Annotated[
        int, typer.Argument(min=1, help="1-based chapter number from `status`.")
    ],
    language: Annotated[
        str | None,
        typer.Option("--language", help="Language of the podcast script."),
    ] = None,
    api_key: ApiKeyOption = None,
    prompt_api_key: PromptApiKeyOption = False,
    store_api_keys: StoreApiKeysOption = True,
    config_file: ConfigOption = None,
    data_dir: DataDirOption = None,
) -> None:
    """Generate the podcast script and audio for one chapter."""

    try:
        sources = _credential_sources(api_key, prompt_api_key, store_api_keys)
        config = _resolve_command_config(
            config_file=config_file,
            data_dir=data_dir,
            language=language,
            runtime_sources=sources,
        )
        orchestrator = _build_orchestrator(config, run_logger=RunLogger())
        with _cancel_on_interrupt(orchestrator):
            outcome = orchestrator.generate_enrichment(
                topic,
                chapter_number - 1,
                config.language,
                progress_callback=ProgressPrinter(command_name="podcast"),
            )
    except Exception as exc:
        exit_with_command_error("podcast", exc)

    typer.echo(f"Topic: {outcome.topic}")
    typer.echo(f"Status: {outcome.status}")


@app.command("status")
def status_command(
    topic: Annotated[str, typer.Argument(help="Topic to inspect.")],
    config_file: ConfigOption = None,
    data_dir: DataDirOption = None,
) -> None:
    """Show stored artifacts for a topic and where a run would resume."""

    try:
        config = _resolve_command_config(config_file=config_file, data_dir=data_dir)
        orchestrator = _build_orchestrator(config)
        point = orchestrator.describe_topic(topic)
    except Exception as exc:
        exit_with_command_error("status", exc)

    echo_resume_point(point)


@app.command("clear")
def clear_command(
    topic: Annotated[str, typer.Argument(help="Topic whose artifacts are discarded.")],
    config_file: ConfigOption = None,
    data_dir: DataDirOption = None,
) -> None:
    """Discard every stored artifact for a topic."""

    try:
        config = _resolve_command_config(config_file=config_file, data_dir=data_dir)
        orchestrator = _build_orchestrator(config)
        orchestrator.clear_topic(topic)
    except Exception as exc:
        exit_with_command_error("clear", exc)

    typer.echo(f"Cleared stored artifacts for topic: {topic.strip()}")


@app.command("credentials-status")
def credentials_status_command() -> None:
    """Report whether secure storage is usable and how many keys it holds."""

    try:
        credential_store = create_credential_store()
        availability = "available" if credential_store.is_available() else "unavailable"
        stored_count = len(credential_store.get_api_keys())
    except Exception as exc:
        exit_with_command_error(
            "credentials-status",
            ConfigurationError(
                stage="credentials",
                detail=f"Failed to read secure credential storage: {exc}",
                hint="Install and configure a keyring backend and retry.",
            ),
        )

    typer.echo(f"Secure credential storage: {availability}")
    typer.echo(f"Stored Gemini API keys: {stored_count if stored_count else 'not set'}")


@app.command("credentials-clear")
def credentials_clear_command() -> None:
    """Remove stored API keys from secure credential storage."""

    try:
        removed = create_credential_store().clear_api_keys()
    except Exception as exc:
        exit_with_command_error(
            "credentials-clear",
            ConfigurationError(
                stage="credentials",
                detail=f"Failed to clear secure credential storage: {exc}",
                hint="Install and configure a keyring backend and retry.",
            ),
        )

    if removed:
        typer.echo("Stored API keys cleared from secure credential storage.")
    else:
        typer.echo("No stored API keys found in secure credential storage.")


def main() -> None:
    """CLI entrypoint for console scripts."""
    app()


if __name__ == "__main__":
    main()
