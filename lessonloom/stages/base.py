"""Shared plumbing for stage generators.

Every stage builds one `ProviderRequest`, runs it through the `OperationRunner`
against the run's `CredentialPool`, and returns a `StageResult` carrying the
credential index that succeeded.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from ..llm.credential_pool import CredentialPool
from ..llm.operation_runner import OperationResult, OperationRunner
from ..llm.prompts import PromptLibrary
from ..llm.provider_adapter import ProviderCallAdapter, ProviderRequest

_Value = TypeVar("_Value")


@dataclass(frozen=True, slots=True)
class StageResult(Generic[_Value]):
    """Value produced by a stage and the pool index of the credential used."""

    value: _Value
    index_used: int


class StageGenerator:
    """Base class binding a stage to an adapter, a runner, and a credential pool."""

    stage_name = "stage"

    def __init__(
        self,
        *,
        adapter: ProviderCallAdapter,
        pool: CredentialPool,
        model: str,
        runner: OperationRunner | None = None,
        prompts: PromptLibrary | None = None,
    ) -> None:
        self.adapter = adapter
        self.pool = pool
        self.model = model
        self.runner = runner if runner is not None else OperationRunner()
        self.prompts = prompts if prompts is not None else PromptLibrary()

    def _execute(self, request: ProviderRequest) -> OperationResult[Any]:
        return self.runner.run(
            self.pool,
            lambda credential: self.adapter.call(credential, request),
            stage=self.stage_name,
        )
