"""Structured run logging utilities.

Responsibilities:
- Emit concise, deterministic phase-level runtime logs through `loguru`.
- Keep secrets out of log lines; credentials are referenced by pool index only.
"""

from __future__ import annotations

import sys
from contextlib import suppress
from typing import TextIO

from loguru import logger as _loguru_logger


def _sanitize_context_value(value: object) -> str:
    """Convert context values into stable, shell-safe tokens."""

    raw = str(value).strip()
    if not raw:
        return "none"
    return "".join(
        character if character.isalnum() or character in {"-", "_", ".", ":", "/"} else "_"
        for character in raw
    )


def _format_context(context: dict[str, object]) -> str:
    if not context:
        return ""
    tokens = [
        f"{key}={_sanitize_context_value(context[key])}"
        for key in sorted(context.keys())
        if context[key] is not None
    ]
    return " " + " ".join(tokens) if tokens else ""


class RunLogger:
    """Emit deterministic phase logs for generation runs."""

    def __init__(self, sink: TextIO | None = None, level: str = "INFO") -> None:
        """Initialize logger sink and configure deterministic formatting."""

        self._sink = sink or sys.stderr
        _loguru_logger.remove()
        self._handler_id = _loguru_logger.add(
            self._sink, format="{message}", level=level, colorize=False
        )

    def close(self) -> None:
        """Detach the sink added by this logger, if a later logger has not already."""

        with suppress(ValueError):
            _loguru_logger.remove(self._handler_id)

    def _emit(self, level: str, event: str, stage: str, **context: object) -> None:
        line = f"[phase] level={level} stage={stage} event={event}{_format_context(context)}"
        _loguru_logger.log(level, line)

    def log_stage_start(self, stage: str, **context: object) -> None:
        self._emit("INFO", "start", stage, **context)

    def log_stage_complete(self, stage: str, **context: object) -> None:
        self._emit("INFO", "complete", stage, **context)

    def log_stage_skipped(self, stage: str, **context: object) -> None:
        """Emit a stage-skip event for work already present in the store."""

        self._emit("INFO", "skipped", stage, **context)

    def log_stage_failure(self, stage: str, error_type: str, **context: object) -> None:
        """Emit a stage-failure runtime event without sensitive payload details."""

        self._emit("ERROR", "failure", stage, error_type=error_type, **context)

    def log_credential_rotation(
        self,
        stage: str,
        *,
        failed_index: int,
        next_index: int,
        failure_kind: str,
    ) -> None:
        """Emit a rotation event naming pool indices, never credential values."""

        self._emit(
            "WARNING",
            "rotate",
            stage,
            failed_index=failed_index,
            next_index=next_index,
            failure_kind=failure_kind,
        )

    def log_run_state(self, state: str, **context: object) -> None:
        self._emit("INFO", state, "run", **context)
