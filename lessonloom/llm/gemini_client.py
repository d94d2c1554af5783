"""Gemini HTTP client utilities for text, JSON, and speech generation.

Responsibilities:
- Send minimal `generateContent` requests to the Google Generative Language REST API.
- Normalize response extraction for text and inline audio payloads.
- Raise provider exceptions tagged with a `failure_kind` for adapter-level mapping.
"""

from __future__ import annotations

import base64
import json
import re
import socket
from typing import Any

import requests


DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


class GeminiProviderError(RuntimeError):
    """Raised when a Gemini request fails or returns an unusable envelope.

    `failure_kind` is one of `quota`, `invalid_api_key`, `malformed_response`,
    `blocked`, `timeout`, `transport`, `http_error`, or `unknown`.
    """

    def __init__(
        self,
        message: str,
        *,
        failure_kind: str = "unknown",
        status_code: int | None = None,
        provider_status: str | None = None,
    ) -> None:
        """Initialize provider error metadata for adapter classification."""

        super().__init__(message)
        self.failure_kind = failure_kind
        self.status_code = status_code
        self.provider_status = provider_status


class GeminiClient:
    """Minimal requests-based Gemini `generateContent` client bound to one API key."""

    _MAX_PROVIDER_MESSAGE_CHARS = 180

    def __init__(
        self,
        *,
        api_key: str | None,
        base_url: str = DEFAULT_BASE_URL,
        timeout_seconds: float = 60.0,
    ) -> None:
        self.api_key = api_key.strip() if isinstance(api_key, str) else ""
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds

    def generate_text(
        self,
        *,
        model: str,
        prompt: str,
        json_mode: bool = False,
        temperature: float = 0.7,
    ) -> str:
        """Return the concatenated text parts of the first candidate."""

        generation_config: dict[str, Any] = {"temperature": temperature}
        if json_mode:
            generation_config["responseMimeType"] = "application/json"
        payload = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": generation_config,
        }
        response_payload = self._post_generate_content(model=model, payload=payload)
        parts = self._first_candidate_parts(response_payload)
        text = "".join(
            part["text"] for part in parts if isinstance(part, dict) and isinstance(part.get("text"), str)
        )
        if not text.strip():
            raise GeminiProviderError(
                "Gemini response text is empty.",
                failure_kind="malformed_response",
            )
        return text

    def synthesize_speech(
        self,
        *,
        model: str,
        script: str,
        speakers: dict[str, str],
    ) -> bytes:
        """Return raw 16-bit PCM audio for a multi-speaker script.

        Args:
            model: TTS-capable model identifier.
            script: Dialogue text with one `Speaker: line` per line.
            speakers: Mapping of speaker label to prebuilt voice name.
        """

        payload = {
            "contents": [{"role": "user", "parts": [{"text": script}]}],
            "generationConfig": {
                "responseModalities": ["AUDIO"],
                "speechConfig": {
                    "multiSpeakerVoiceConfig": {
                        "speakerVoiceConfigs": [
                            {
                                "speaker": speaker,
                                "voiceConfig": {"prebuiltVoiceConfig": {"voiceName": voice}},
                            }
                            for speaker, voice in speakers.items()
                        ]
                    }
                },
            },
        }
        response_payload = self._post_generate_content(model=model, payload=payload)
        for part in self._first_candidate_parts(response_payload):
            inline = part.get("inlineData") if isinstance(part, dict) else None
            if isinstance(inline, dict) and isinstance(inline.get("data"), str):
                try:
                    audio = base64.b64decode(inline["data"], validate=True)
                except (ValueError, TypeError) as exc:
                    raise GeminiProviderError(
                        "Gemini speech response carries invalid base64 audio.",
                        failure_kind="malformed_response",
                    ) from exc
                if audio:
                    return audio
        raise GeminiProviderError(
            "Gemini speech response contains no audio data.",
            failure_kind="malformed_response",
        )

    def _post_generate_content(self, *, model: str, payload: dict[str, Any]) -> dict[str, Any]:
        """POST a `generateContent` request and return the decoded JSON envelope."""

        if not self.api_key:
            raise GeminiProviderError("Missing Gemini API key.", failure_kind="invalid_api_key")

        endpoint = f"{self.base_url}/models/{model}:generateContent"
        headers = {
            "x-goog-api-key": self.api_key,
            "Content-Type": "application/json",
        }
        try:
            response = requests.post(
                endpoint,
                headers=headers,
                json=payload,
                timeout=self.timeout_seconds,
            )
            response.raise_for_status()
            raw = bytes(response.content)
        except requests.HTTPError as exc:
            raise self._http_error_to_provider_error(exc) from exc
        except requests.RequestException as exc:
            failure_kind = self._classify_transport_failure(exc)
            if failure_kind == "timeout":
                detail = "Gemini request timed out."
            else:
                detail = f"Gemini request transport error: {self._short_message(str(exc))}"
            raise GeminiProviderError(detail, failure_kind=failure_kind) from exc
        except TimeoutError as exc:
            raise GeminiProviderError("Gemini request timed out.", failure_kind="timeout") from exc

        try:
            decoded = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise GeminiProviderError(
                "Gemini returned an invalid JSON envelope.",
                failure_kind="malformed_response",
            ) from exc
        if not isinstance(decoded, dict):
            raise GeminiProviderError(
                "Gemini response envelope must be a JSON object.",
                failure_kind="malformed_response",
            )
        return decoded

    @staticmethod
    def _first_candidate_parts(payload: dict[str, Any]) -> list[Any]:
        """Return `candidates[0].content.parts`, mapping blocked prompts explicitly."""

        candidates = payload.get("candidates")
        if not isinstance(candidates, list) or not candidates:
            feedback = payload.get("promptFeedback")
            if isinstance(feedback, dict) and feedback.get("blockReason"):
                raise GeminiProviderError(
                    f"Gemini blocked the prompt: {feedback['blockReason']}",
                    failure_kind="blocked",
                )
            raise GeminiProviderError(
                "Gemini response missing non-empty `candidates` list.",
                failure_kind="malformed_response",
            )
        first = candidates[0]
        content = first.get("content") if isinstance(first, dict) else None
        parts = content.get("parts") if isinstance(content, dict) else None
        if not isinstance(parts, list):
            raise GeminiProviderError(
                "Gemini response missing `candidates[0].content.parts`.",
                failure_kind="malformed_response",
            )
        return parts

    @classmethod
    def _redact_sensitive_tokens(cls, text: str) -> str:
        """Redact API-key-like tokens from provider error content."""

        return re.sub(r"\bAIza[0-9A-Za-z_-]{20,}\b", "[redacted-key]", text)

    @classmethod
    def _short_message(cls, text: str) -> str:
        compact = " ".join(cls._redact_sensitive_tokens(text).split())
        if len(compact) <= cls._MAX_PROVIDER_MESSAGE_CHARS:
            return compact
        return f"{compact[: cls._MAX_PROVIDER_MESSAGE_CHARS - 1]}..."

    @classmethod
    def _extract_provider_error(cls, body: str) -> tuple[str, str | None, tuple[str, ...]]:
        """Extract message, status token, and detail reasons from a Gemini error body."""

        if not body:
            return "", None, ()
        try:
            payload = json.loads(body)
        except json.JSONDecodeError:
            return cls._short_message(body), None, ()

        error_payload = payload.get("error") if isinstance(payload, dict) else None
        if not isinstance(error_payload, dict):
            return cls._short_message(body), None, ()

        message = error_payload.get("message")
        status = error_payload.get("status")
        reasons: list[str] = []
        details = error_payload.get("details")
        if isinstance(details, list):
            for item in details:
                if isinstance(item, dict) and isinstance(item.get("reason"), str):
                    reasons.append(item["reason"])
        return (
            cls._short_message(message if isinstance(message, str) else body),
            status if isinstance(status, str) else None,
            tuple(reasons),
        )

    @staticmethod
    def _classify_http_failure(
        status_code: int,
        provider_message: str,
        provider_status: str | None,
        reasons: tuple[str, ...],
    ) -> str:
        """Classify Gemini HTTP errors into failure kinds."""

        message_lower = provider_message.lower()
        if status_code == 429 or provider_status == "RESOURCE_EXHAUSTED" or "quota" in message_lower:
            return "quota"
        if (
            status_code in {401, 403}
            or "API_KEY_INVALID" in reasons
            or provider_status == "UNAUTHENTICATED"
            or (status_code == 400 and "api key" in message_lower)
        ):
            return "invalid_api_key"
        if status_code in {408, 504} or "deadline" in message_lower or "timed out" in message_lower:
            return "timeout"
        return "http_error"

    @staticmethod
    def _classify_transport_failure(reason: object) -> str:
        if isinstance(reason, TimeoutError | socket.timeout | requests.Timeout):
            return "timeout"
        return "transport"

    @classmethod
    def _http_error_to_provider_error(cls, exc: requests.HTTPError) -> GeminiProviderError:
        """Convert HTTP errors into normalized provider exceptions with metadata."""

        response = exc.response
        status_code = response.status_code if response is not None else 0
        body = ""
        if response is not None:
            body = bytes(response.content).decode("utf-8", errors="replace").strip()
        message, provider_status, reasons = cls._extract_provider_error(body)
        failure_kind = cls._classify_http_failure(status_code, message, provider_status, reasons)

        headline = {
            "quota": "Gemini quota is exhausted for this API key",
            "invalid_api_key": "Gemini rejected the API key",
            "timeout": "Gemini request timed out",
        }.get(failure_kind, "Gemini request failed")
        detail = f"{headline} (HTTP {status_code})"
        detail = f"{detail}: {message}" if message else f"{detail}."
        return GeminiProviderError(
            detail,
            failure_kind=failure_kind,
            status_code=status_code,
            provider_status=provider_status,
        )
