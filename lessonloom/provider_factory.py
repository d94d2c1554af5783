"""Provider factory helpers for the generation engine.

Resolves provider identifiers to a configured `ProviderCallAdapter` so the CLI
and embedding callers never construct provider clients directly. Only
`gemini` is implemented.
"""

from __future__ import annotations

from .llm.gemini_client import GeminiClient
from .llm.provider_adapter import ProviderCallAdapter


class ProviderFactory:
    """Factory for provider-backed call adapters."""

    @staticmethod
    def create_adapter(provider_id: str, timeout_seconds: float = 60.0) -> ProviderCallAdapter:
        """Create a call adapter for a configured provider identifier."""

        if provider_id == "gemini":
            return ProviderCallAdapter(client_factory=GeminiClient, timeout_seconds=timeout_seconds)
        raise ValueError(f"Unsupported provider `{provider_id}`.")
