"""Single-attempt provider call adapter with typed failure classification.

Responsibilities:
- Perform exactly one outbound request with one credential.
- Parse text, JSON, and audio responses into the requested output shape.
- Classify every failure as quota, invalid credential, malformed output, or unknown.

Key types:
- `ProviderRequest`: prompt, model, response kind, and optional output shape.
- `FailureKind`: the closed set of failure classes exposed to the runner.
- `ProviderCallFailure`: exception carrying a `FailureKind`.
- `ProviderCallAdapter`: the adapter itself.
"""

from __future__ import annotations

import base64
import enum
import io
import json
import re
import wave
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, get_origin

from pydantic import BaseModel, ValidationError

from .gemini_client import GeminiClient, GeminiProviderError


class FailureKind(str, enum.Enum):
    QUOTA = "quota"
    INVALID_CREDENTIAL = "invalid_credential"
    MALFORMED_OUTPUT = "malformed_output"
    UNKNOWN = "unknown"

    @property
    def rotatable(self) -> bool:
        """Return whether switching credentials can fix this failure."""

        return self in {FailureKind.QUOTA, FailureKind.INVALID_CREDENTIAL}


class ProviderCallFailure(RuntimeError):
    """Raised by the adapter when one provider attempt fails."""

    def __init__(self, kind: FailureKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message


_CLIENT_FAILURE_KINDS = {
    "quota": FailureKind.QUOTA,
    "invalid_api_key": FailureKind.INVALID_CREDENTIAL,
    "malformed_response": FailureKind.MALFORMED_OUTPUT,
}


def classify_provider_error(error: BaseException) -> FailureKind:
    """Map a raw provider or parsing exception onto a `FailureKind`."""

    if isinstance(error, ProviderCallFailure):
        return error.kind
    if isinstance(error, GeminiProviderError):
        return _CLIENT_FAILURE_KINDS.get(error.failure_kind, FailureKind.UNKNOWN)
    if isinstance(error, ValidationError | json.JSONDecodeError):
        return FailureKind.MALFORMED_OUTPUT
    return FailureKind.UNKNOWN


@dataclass(frozen=True, slots=True)
class ProviderRequest:
    """One structured provider request.

    Attributes:
        model: Model identifier.
        prompt: Prompt text (or the dialogue script for `audio` requests).
        response_kind: `text`, `json`, or `audio`.
        output_shape: Pydantic model the JSON response must validate against.
        speakers: Speaker label to voice name mapping for `audio` requests.
    """

    model: str
    prompt: str
    response_kind: str = "text"
    output_shape: type[BaseModel] | None = None
    speakers: dict[str, str] = field(default_factory=dict)


_FENCE_PATTERN = re.compile(r"^\s*```[a-zA-Z0-9_-]*\s*\n(?P<body>.*?)\n?```\s*$", re.DOTALL)


def strip_code_fence(text: str) -> str:
    """Remove a single Markdown code fence wrapping the whole response."""

    match = _FENCE_PATTERN.match(text)
    if match is None:
        return text.strip()
    return match.group("body").strip()


def pcm_to_wav_data_uri(
    pcm: bytes,
    *,
    channels: int = 1,
    sample_rate: int = 24000,
    sample_width: int = 2,
) -> str:
    """Wrap raw PCM audio into a WAV container and return it as a data URI."""

    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav_file:
        wav_file.setnchannels(channels)
        wav_file.setsampwidth(sample_width)
        wav_file.setframerate(sample_rate)
        wav_file.writeframes(pcm)
    encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
    return f"data:audio/wav;base64,{encoded}"


class ProviderCallAdapter:
    """Perform one provider request per call and classify the outcome."""

    def __init__(
        self,
        client_factory: Callable[..., GeminiClient] = GeminiClient,
        timeout_seconds: float = 60.0,
    ) -> None:
        self._client_factory = client_factory
        self.timeout_seconds = timeout_seconds

    def call(self, credential: str, request: ProviderRequest) -> Any:
        """Execute `request` with `credential` and return the typed result.

        Returns:
            `str` for text requests, an instance of `request.output_shape` for
            JSON requests, and a `data:audio/wav` reference for audio requests.

        Raises:
            ProviderCallFailure: For every failure, tagged with its `FailureKind`.
        """

        client = self._client_factory(api_key=credential, timeout_seconds=self.timeout_seconds)
        try:
            if request.response_kind == "audio":
                pcm = client.synthesize_speech(
                    model=request.model,
                    script=request.prompt,
                    speakers=request.speakers,
                )
                return pcm_to_wav_data_uri(pcm)
            raw_text = client.generate_text(
                model=request.model,
                prompt=request.prompt,
                json_mode=request.response_kind == "json",
            )
            if request.response_kind == "json":
                return self._parse_json(raw_text, request.output_shape)
            return strip_code_fence(raw_text)
        except ProviderCallFailure:
            raise
        except Exception as exc:
            raise ProviderCallFailure(classify_provider_error(exc), str(exc)) from exc

    @staticmethod
    def _parse_json(raw_text: str, output_shape: type[BaseModel] | None) -> Any:
        """Decode JSON text and validate it against the expected shape."""

        payload = json.loads(strip_code_fence(raw_text))
        if output_shape is None:
            return payload
        if isinstance(payload, list):
            # Models often return the bare list instead of the wrapping object.
            list_fields = [
                name
                for name, info in output_shape.model_fields.items()
                if get_origin(info.annotation) is list
            ]
            if len(list_fields) == 1:
                payload = {list_fields[0]: payload}
        return output_shape.model_validate(payload)
