"""CLI credential runtime resolution helpers.

This module isolates API key prompting, runtime source assembly, and secure
API key persistence from the command wiring layer.
"""

from __future__ import annotations

from typing import Callable, Protocol, Sequence

import typer

from .credentials import create_credential_store
from .errors import ConfigurationError
from .parsing import normalize_optional_string, parse_api_keys


class CredentialStoreProtocol(Protocol):
    """Protocol for secure credential store operations used by CLI runtime resolution."""

    def get_api_keys(self) -> tuple[str, ...]:
        """Return the currently stored API key pool."""

    def set_api_keys(self, api_keys: Sequence[str]) -> None:
        """Persist the API key pool in secure storage."""


def _prompt_for_api_keys() -> tuple[str, ...]:
    """Prompt for a comma-separated key pool with hidden input."""

    prompted = normalize_optional_string(
        typer.prompt(
            "Gemini API keys, comma-separated (hidden; leave blank to skip)",
            default="",
            hide_input=True,
            show_default=False,
        )
    )
    if prompted is None:
        return ()
    return parse_api_keys(prompted)


def resolve_credential_runtime_sources(
    api_keys: Sequence[str] | None,
    prompt_api_key: bool,
    store_api_keys: bool,
    credential_store_factory: Callable[[], CredentialStoreProtocol] = create_credential_store,
) -> tuple[dict[str, str], dict[str, str]]:
    """Resolve CLI and secure runtime source mappings for the API key pool.

    Returns:
        `(cli_values, secure_values)`; each holds `api_keys` as a
        newline-joined string when that source provided any keys.
    """

    cli_keys = parse_api_keys(list(api_keys or ()))
    if not cli_keys and prompt_api_key:
        cli_keys = _prompt_for_api_keys()

    runtime_cli_values: dict[str, str] = {}
    if cli_keys:
        runtime_cli_values["api_keys"] = "\n".join(cli_keys)

    credential_store = credential_store_factory()
    runtime_secure_values: dict[str, str] = {}
    try:
        stored_keys = credential_store.get_api_keys()
    except Exception as exc:
        raise ConfigurationError(
            stage="credentials",
            detail=f"Failed to read secure credential storage: {exc}",
            hint="Configure a keyring backend, or pass keys with `--api-key` and `--no-store-api-keys`.",
        ) from exc
    if stored_keys:
        runtime_secure_values["api_keys"] = "\n".join(stored_keys)

    if cli_keys and store_api_keys:
        try:
            credential_store.set_api_keys(cli_keys)
        except Exception as exc:
            raise ConfigurationError(
                stage="credentials",
                detail=f"Failed to store API keys securely: {exc}",
                hint=(
                    "Install and configure a keyring backend, or rerun with "
                    "`--no-store-api-keys` for one-off usage."
                ),
            ) from exc
        typer.echo(f"Stored {len(cli_keys)} API key(s) in secure credential storage.")

    return runtime_cli_values, runtime_secure_values
