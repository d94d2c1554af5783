"""Configuration model and loaders for Lessonloom.

Responsibilities:
- Define runtime configuration as a typed dataclass.
- Provide deterministic precedence resolution for runtime API keys and models.
- Provide loader entry points for file- and environment-based configuration.

Key types:
- `LessonloomConfig`: normalized runtime settings for a generation session.
- `RuntimeConfigSources`: optional value sources for precedence resolution.
- `ConfigLoader`: static construction helpers for `LessonloomConfig`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import os
from pathlib import Path
from typing import Any, Mapping

import yaml

from .parsing import normalize_optional_string, parse_api_keys
from .pipeline.orchestrator import DEFAULT_TEXT_MODEL, DEFAULT_TTS_MODEL, GenerationOptions


_DEFAULT_DATA_DIR = ".lessonloom"
_DEFAULT_LANGUAGE = "English"
_SUPPORTED_PROVIDER_IDS = frozenset({"gemini"})


@dataclass(frozen=True, slots=True)
class RuntimeConfigSources:
    """Source mappings used for deterministic runtime value precedence.

    Attributes:
        cli: Values explicitly provided by CLI arguments.
        secure: Values loaded from secure local credential storage.
        env: Values loaded from environment variables.
    """

    cli: Mapping[str, str] = field(default_factory=dict)
    secure: Mapping[str, str] = field(default_factory=dict)
    env: Mapping[str, str] = field(default_factory=dict)


@dataclass(slots=True)
class LessonloomConfig:
    """Runtime configuration for a generation session.

    Attributes:
        data_dir: Root directory of the resumable file store.
        language: Language all generated material is written in.
        provider: Provider identifier (`gemini`).
        text_model: Model for text and structured stages.
        tts_model: Model for podcast audio.
        api_keys: Ordered provider API keys forming the credential pool.
        flashcards_per_chapter: Cards requested per chapter.
        quiz_questions_per_chapter: Quiz questions requested per chapter.
        chapter_pause_seconds: Pause between chapters.
        request_timeout_seconds: HTTP timeout for one provider call.
        runtime_sources: Optional runtime source overrides injected by CLI.
    """

    data_dir: Path = field(default_factory=lambda: Path(_DEFAULT_DATA_DIR))
    language: str = _DEFAULT_LANGUAGE
    provider: str = "gemini"
    text_model: str = DEFAULT_TEXT_MODEL
    tts_model: str = DEFAULT_TTS_MODEL
    api_keys: tuple[str, ...] = ()
    flashcards_per_chapter: int = 5
    quiz_questions_per_chapter: int = 4
    chapter_pause_seconds: float = 1.0
    request_timeout_seconds: float = 60.0
    runtime_sources: RuntimeConfigSources = field(default_factory=RuntimeConfigSources)

    def validate(self) -> None:
        """Validate configuration values before a session starts."""

        if self.provider not in _SUPPORTED_PROVIDER_IDS:
            supported = ", ".join(sorted(_SUPPORTED_PROVIDER_IDS))
            raise ValueError(f"Unsupported `provider` value `{self.provider}`; supported: {supported}.")
        self._require_non_empty(self.language, "language")
        self._require_non_empty(self.text_model, "text_model")
        self._require_non_empty(self.tts_model, "tts_model")
        if self.request_timeout_seconds <= 0:
            raise ValueError("`request_timeout_seconds` must be positive.")
        self.generation_options().validate()

    def generation_options(self) -> GenerationOptions:
        """Return per-run orchestrator options derived from this config."""

        return GenerationOptions(
            flashcards_per_chapter=self.flashcards_per_chapter,
            quiz_questions_per_chapter=self.quiz_questions_per_chapter,
            chapter_pause_seconds=self.chapter_pause_seconds,
            text_model=self.text_model,
            tts_model=self.tts_model,
        )

    def resolved_api_keys(self, sources: RuntimeConfigSources | None = None) -> tuple[str, ...]:
        """Resolve the credential pool with deterministic source precedence.

        Precedence is `cli` > `secure` > `env` (`GEMINI_API_KEYS`) > config
        field. The first source that yields at least one key wins; sources are
        never merged, so rotation order is exactly what that source lists.
        """

        resolved_sources = sources if sources is not None else self.runtime_sources
        for mapping, key in (
            (resolved_sources.cli, "api_keys"),
            (resolved_sources.secure, "api_keys"),
            (resolved_sources.env, "GEMINI_API_KEYS"),
        ):
            keys = parse_api_keys(mapping.get(key))
            if keys:
                return keys
        return tuple(self.api_keys)

    @staticmethod
    def _require_non_empty(value: str, field_name: str) -> None:
        if not isinstance(value, str) or not value.strip():
            raise ValueError(f"`{field_name}` must be a non-empty string.")


class ConfigLoader:
    """Factory methods for creating `LessonloomConfig` from external sources."""

    _SUPPORTED_YAML_KEYS = frozenset(
        {
            "data_dir",
            "language",
            "provider",
            "text_model",
            "tts_model",
            "api_keys",
            "flashcards_per_chapter",
            "quiz_questions_per_chapter",
            "chapter_pause_seconds",
            "request_timeout_seconds",
        }
    )
    _RUNTIME_ENV_KEYS = frozenset({"GEMINI_API_KEYS"})

    @staticmethod
    def from_yaml(path: Path) -> LessonloomConfig:
        """Create a validated config from a YAML file."""

        path_text = path.read_text(encoding="utf-8")
        payload = ConfigLoader._parse_yaml_payload(path_text, path)
        return ConfigLoader._build_config_from_mapping(payload, source_label=f"YAML `{path}`")

    @staticmethod
    def from_env(env: Mapping[str, str] | None = None) -> LessonloomConfig:
        """Create a validated config from environment variables."""

        env_map: Mapping[str, str] = os.environ if env is None else env
        label = "Environment variable"

        data_dir = ConfigLoader._optional_env_string(env_map, "LESSONLOOM_DATA_DIR")
        config = LessonloomConfig(
            data_dir=Path(data_dir) if data_dir is not None else Path(_DEFAULT_DATA_DIR),
            language=ConfigLoader._optional_env_string(env_map, "LESSONLOOM_LANGUAGE")
            or _DEFAULT_LANGUAGE,
            provider=ConfigLoader._optional_env_string(env_map, "LESSONLOOM_PROVIDER") or "gemini",
            text_model=ConfigLoader._optional_env_string(env_map, "LESSONLOOM_TEXT_MODEL")
            or DEFAULT_TEXT_MODEL,
            tts_model=ConfigLoader._optional_env_string(env_map, "LESSONLOOM_TTS_MODEL")
            or DEFAULT_TTS_MODEL,
            api_keys=parse_api_keys(env_map.get("GEMINI_API_KEYS")),
            flashcards_per_chapter=ConfigLoader._optional_positive_int(
                env_map, "LESSONLOOM_FLASHCARDS_PER_CHAPTER", label, default=5
            ),
            quiz_questions_per_chapter=ConfigLoader._optional_positive_int(
                env_map, "LESSONLOOM_QUIZ_QUESTIONS_PER_CHAPTER", label, default=4
            ),
            chapter_pause_seconds=ConfigLoader._optional_non_negative_float(
                env_map, "LESSONLOOM_CHAPTER_PAUSE_SECONDS", label, default=1.0
            ),
            request_timeout_seconds=ConfigLoader._optional_non_negative_float(
                env_map, "LESSONLOOM_REQUEST_TIMEOUT_SECONDS", label, default=60.0
            ),
            runtime_sources=RuntimeConfigSources(
                env={
                    key: value
                    for key, value in env_map.items()
                    if key in ConfigLoader._RUNTIME_ENV_KEYS
                    and normalize_optional_string(value) is not None
                }
            ),
        )
        config.validate()
        return config

    @staticmethod
    def _parse_yaml_payload(raw_text: str, path: Path) -> Mapping[str, Any]:
        """Parse YAML text and enforce a mapping root payload."""

        try:
            payload = yaml.safe_load(raw_text)
        except yaml.YAMLError as exc:
            raise ValueError(f"YAML config `{path}` is not valid YAML: {exc}") from exc

        if payload is None:
            payload = {}
        if not isinstance(payload, Mapping):
            raise ValueError(f"YAML config `{path}` must contain a top-level mapping/object.")
        return payload

    @staticmethod
    def _build_config_from_mapping(payload: Mapping[str, Any], source_label: str) -> LessonloomConfig:
        """Build a validated config from a normalized mapping payload."""

        unknown = sorted(set(payload).difference(ConfigLoader._SUPPORTED_YAML_KEYS))
        if unknown:
            key_list = ", ".join(unknown)
            raise ValueError(f"{source_label} includes unsupported key(s): {key_list}.")

        data_dir = ConfigLoader._optional_non_empty_string(payload, "data_dir")
        try:
            api_keys = parse_api_keys(payload.get("api_keys"))
        except ValueError as exc:
            raise ValueError(f"{source_label} field `api_keys` must be a string or a list.") from exc

        config = LessonloomConfig(
            data_dir=Path(data_dir).expanduser() if data_dir is not None else Path(_DEFAULT_DATA_DIR),
            language=ConfigLoader._optional_non_empty_string(payload, "language") or _DEFAULT_LANGUAGE,
            provider=ConfigLoader._optional_non_empty_string(payload, "provider") or "gemini",
            text_model=ConfigLoader._optional_non_empty_string(payload, "text_model")
            or DEFAULT_TEXT_MODEL,
            tts_model=ConfigLoader._optional_non_empty_string(payload, "tts_model")
            or DEFAULT_TTS_MODEL,
            api_keys=api_keys,
            flashcards_per_chapter=ConfigLoader._optional_positive_int(
                payload, "flashcards_per_chapter", source_label, default=5
            ),
            quiz_questions_per_chapter=ConfigLoader._optional_positive_int(
                payload, "quiz_questions_per_chapter", source_label, default=4
            ),
            chapter_pause_seconds=ConfigLoader._optional_non_negative_float(
                payload, "chapter_pause_seconds", source_label, default=1.0
            ),
            request_timeout_seconds=ConfigLoader._optional_non_negative_float(
                payload, "request_timeout_seconds", source_label, default=60.0
            ),
        )
        config.validate()
        return config

    @staticmethod
    def _optional_non_empty_string(payload: Mapping[str, Any], key: str) -> str | None:
        if key not in payload:
            return None
        return normalize_optional_string(payload[key])

    @staticmethod
    def _optional_env_string(env: Mapping[str, str], key: str) -> str | None:
        if key not in env:
            return None
        return normalize_optional_string(env.get(key))

    @staticmethod
    def _optional_positive_int(
        payload: Mapping[str, Any], key: str, source_label: str, default: int
    ) -> int:
        """Read and validate a positive integer field."""

        if key not in payload:
            return default

        raw_value = payload[key]
        if isinstance(raw_value, bool):
            raise ValueError(f"{source_label} `{key}` must be a positive integer.")
        if isinstance(raw_value, int):
            parsed = raw_value
        else:
            normalized = normalize_optional_string(raw_value)
            if normalized is None:
                return default
            try:
                parsed = int(normalized)
            except ValueError as exc:
                raise ValueError(f"{source_label} `{key}` must be a positive integer.") from exc

        if parsed <= 0:
            raise ValueError(f"{source_label} `{key}` must be a positive integer.")
        return parsed

    @staticmethod
    def _optional_non_negative_float(
        payload: Mapping[str, Any], key: str, source_label: str, default: float
    ) -> float:
        """Read and validate a non-negative number field."""

        if key not in payload:
            return default

        raw_value = payload[key]
        if isinstance(raw_value, bool):
            raise ValueError(f"{source_label} `{key}` must be a non-negative number.")
        if isinstance(raw_value, (int, float)):
            parsed = float(raw_value)
        else:
            normalized = normalize_optional_string(raw_value)
            if normalized is None:
                return default
            try:
                parsed = float(normalized)
            except ValueError as exc:
                raise ValueError(f"{source_label} `{key}` must be a non-negative number.") from exc

        if parsed < 0:
            raise ValueError(f"{source_label} `{key}` must be a non-negative number.")
        return parsed
