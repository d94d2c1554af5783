"""Domain exceptions for generation runs and CLI diagnostics.

Every error carries a stable `code`, the `stage` it was raised in, a concise
`detail`, and an optional remediation `hint`. Codes map to distinct user
actions (fix credentials, retry later, report a prompt/schema bug, repair
storage) and are never collapsed into one generic failure.
"""

from __future__ import annotations


class GenerationError(RuntimeError):
    """Base class for failures raised by the generation engine."""

    code = "generation_error"

    def __init__(
        self,
        *,
        stage: str,
        detail: str,
        hint: str | None = None,
    ) -> None:
        """Initialize a stage-scoped generation error."""

        super().__init__(detail)
        self.stage = stage
        self.detail = detail
        self.hint = hint


class CredentialsRequiredError(GenerationError):
    """Raised when an operation is attempted with an empty credential pool."""

    code = "credentials_required"

    def __init__(self, *, stage: str = "credentials") -> None:
        super().__init__(
            stage=stage,
            detail="At least one provider API key is required.",
            hint="Pass `--api-key`, set `GEMINI_API_KEYS`, or store keys with `--store-api-keys`.",
        )


class InvalidTopicError(GenerationError):
    """Raised when a run is requested for a blank or unknown topic."""

    code = "invalid_topic"


class AlreadyRunningError(GenerationError):
    """Raised when a generation is requested while another one is in flight."""

    code = "already_running"

    def __init__(self, *, stage: str = "lock") -> None:
        super().__init__(
            stage=stage,
            detail="Another generation is already running for this session.",
            hint="Wait for the current run to finish or cancel it first.",
        )


class InvalidFormatError(GenerationError):
    """Raised when the provider answered but the content has the wrong shape."""

    code = "invalid_format"

    def __init__(self, *, stage: str, detail: str) -> None:
        super().__init__(
            stage=stage,
            detail=detail,
            hint=(
                "The provider returned malformed content. This usually points at a "
                "prompt or schema problem rather than at your credentials."
            ),
        )


class AllCredentialsExhaustedError(GenerationError):
    """Raised when every credential in the pool failed with a rotatable error.

    Attributes:
        dominant_failure: `quota`, `invalid_credential`, or `mixed`.
        attempts: Number of provider attempts made before giving up.
    """

    code = "all_credentials_exhausted"

    _DETAILS = {
        "quota": "All API keys have run out of quota.",
        "invalid_credential": "All API keys were rejected as invalid.",
        "mixed": "All API keys failed with quota or credential errors.",
    }
    _HINTS = {
        "quota": "Try again later or add API keys with remaining quota.",
        "invalid_credential": "Check your API keys and replace the invalid ones.",
        "mixed": "Replace invalid API keys and try again later for the exhausted ones.",
    }

    def __init__(self, *, stage: str, dominant_failure: str, attempts: int) -> None:
        super().__init__(
            stage=stage,
            detail=self._DETAILS.get(dominant_failure, self._DETAILS["mixed"]),
            hint=self._HINTS.get(dominant_failure, self._HINTS["mixed"]),
        )
        self.dominant_failure = dominant_failure
        self.attempts = attempts


class OperationFailedError(GenerationError):
    """Raised for unclassified provider failures of a single attempt."""

    code = "operation_failed"

    def __init__(self, *, stage: str, detail: str) -> None:
        super().__init__(
            stage=stage,
            detail=detail,
            hint="The provider call failed unexpectedly. Retry the run; progress is kept.",
        )


class StorageFailureError(GenerationError):
    """Raised when the resumable store cannot read or write an artifact."""

    code = "storage_failure"

    def __init__(self, *, detail: str, stage: str = "storage") -> None:
        super().__init__(
            stage=stage,
            detail=detail,
            hint="Check that the data directory exists, is writable, and is not corrupted.",
        )


class ChapterNotReadyError(GenerationError):
    """Raised when enrichment is requested for a chapter without content."""

    code = "chapter_not_ready"


class ConfigurationError(GenerationError):
    """Raised when CLI arguments, config files, or credential storage are unusable."""

    code = "configuration_error"
