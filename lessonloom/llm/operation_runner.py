"""Retry one generation step across the credential pool.

Responsibilities:
- Start at the pool's current index and try each credential at most once.
- Rotate only on quota and invalid-credential failures.
- Short-circuit on malformed output and unclassified failures.

Key types:
- `OperationResult`: successful result and the credential index that produced it.
- `OperationRunner`: the rotation loop.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

from ..errors import (
    AllCredentialsExhaustedError,
    CredentialsRequiredError,
    InvalidFormatError,
    OperationFailedError,
)
from ..telemetry.logger import RunLogger
from .credential_pool import CredentialPool
from .provider_adapter import FailureKind, ProviderCallFailure, classify_provider_error

_Result = TypeVar("_Result")


@dataclass(frozen=True, slots=True)
class OperationResult(Generic[_Result]):
    """Successful operation outcome.

    Attributes:
        result: Value returned by the operation.
        index_used: Pool index of the credential that succeeded. Callers persist
            it as the next rotation starting point.
        attempts: Number of provider attempts, including the successful one.
    """

    result: _Result
    index_used: int
    attempts: int


def dominant_failure(quota_failures: int, invalid_failures: int) -> str:
    """Name the failure class behind an exhausted pool."""

    if invalid_failures == 0:
        return "quota"
    if quota_failures == 0:
        return "invalid_credential"
    return "mixed"


class OperationRunner:
    """Run a credential-taking operation with rotation across a `CredentialPool`."""

    def __init__(self, run_logger: RunLogger | None = None) -> None:
        self._run_logger = run_logger

    def run(
        self,
        pool: CredentialPool,
        operation: Callable[[str], _Result],
        stage: str = "operation",
    ) -> OperationResult[_Result]:
        """Run `operation` until one credential succeeds or the pool is exhausted.

        Args:
            pool: Credential pool; its index is advanced on rotatable failures.
            operation: Callable receiving one credential. Failures must be raised
                as `ProviderCallFailure`; anything else is classified on the spot.
            stage: Stage name used in errors and log lines.

        Raises:
            CredentialsRequiredError: The pool is empty.
            InvalidFormatError: The provider returned malformed output.
            AllCredentialsExhaustedError: Every credential failed with quota or
                invalid-credential errors.
            OperationFailedError: An unclassified failure occurred.
        """

        if pool.size() == 0:
            raise CredentialsRequiredError(stage=stage)

        quota_failures = 0
        invalid_failures = 0
        total = pool.size()
        for attempt in range(1, total + 1):
            index = pool.current_index
            try:
                result = operation(pool.current())
            except Exception as exc:
                kind = classify_provider_error(exc)
                message = exc.message if isinstance(exc, ProviderCallFailure) else str(exc)
                if kind is FailureKind.MALFORMED_OUTPUT:
                    self._log_failure(stage, kind, index)
                    raise InvalidFormatError(stage=stage, detail=message) from exc
                if not kind.rotatable:
                    self._log_failure(stage, kind, index)
                    raise OperationFailedError(stage=stage, detail=message or repr(exc)) from exc

                if kind is FailureKind.QUOTA:
                    quota_failures += 1
                else:
                    invalid_failures += 1

                if attempt == total:
                    self._log_failure(stage, kind, index)
                    raise AllCredentialsExhaustedError(
                        stage=stage,
                        dominant_failure=dominant_failure(quota_failures, invalid_failures),
                        attempts=attempt,
                    ) from exc

                next_index = pool.advance()
                if self._run_logger is not None:
                    self._run_logger.log_credential_rotation(
                        stage,
                        failed_index=index,
                        next_index=next_index,
                        failure_kind=kind.value,
                    )
                continue

            return OperationResult(result=result, index_used=index, attempts=attempt)

        raise AllCredentialsExhaustedError(
            stage=stage,
            dominant_failure=dominant_failure(quota_failures, invalid_failures),
            attempts=total,
        )

    def _log_failure(self, stage: str, kind: FailureKind, index: int) -> None:
        if self._run_logger is not None:
            self._run_logger.log_stage_failure(stage, kind.value, credential_index=index)
