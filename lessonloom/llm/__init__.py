"""Provider-facing abstractions for generation stages.

This package defines the credential pool, the provider call adapter with its
Gemini HTTP client, the rotating operation runner, prompt templates, and the
pydantic shapes expected from structured responses.
"""

from .credential_pool import CredentialPool
from .gemini_client import GeminiClient, GeminiProviderError
from .operation_runner import OperationResult, OperationRunner
from .prompts import PromptLibrary
from .provider_adapter import (
    FailureKind,
    ProviderCallAdapter,
    ProviderCallFailure,
    ProviderRequest,
)

__all__ = [
    "CredentialPool",
    "FailureKind",
    "GeminiClient",
    "GeminiProviderError",
    "OperationResult",
    "OperationRunner",
    "PromptLibrary",
    "ProviderCallAdapter",
    "ProviderCallFailure",
    "ProviderRequest",
]
