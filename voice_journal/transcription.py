"""Speech-to-text adapters (remote Gemini transcription)."""

from __future__ import annotations

import base64
import logging
from typing import Optional, Protocol

import requests

from .config import DEFAULT_API_URL, DEFAULT_MODEL, DEFAULT_TIMEOUT
from .errors import ConfigurationError, TranscriptionError

logger = logging.getLogger(__name__)

TRANSCRIBE_INSTRUCTION = (
    "Transcribe the audio exactly as spoken. Do not add any introduction, "
    "explanation, or timestamps. If the audio is silent or unintelligible, "
    "return an empty string."
)
FALLBACK_MIME_TYPE = "audio/webm"


class SpeechToTextService(Protocol):
    """Interface for speech-to-text providers."""

    def transcribe(self, audio: bytes, mime_type: str) -> str:
        """Return the transcript for the given encoded audio clip."""


class GeminiTranscriber:
    """Sends encoded audio inline to the Gemini generateContent endpoint.

    One request per call, no retries. An empty transcript is a valid result
    and is returned as ``""``.
    """

    def __init__(
        self,
        api_key: Optional[str],
        model: str = DEFAULT_MODEL,
        api_url: str = DEFAULT_API_URL,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings) -> "GeminiTranscriber":
        return cls(
            api_key=settings.api_key,
            model=settings.model,
            api_url=settings.api_url,
            timeout=settings.timeout,
        )

    @property
    def endpoint(self) -> str:
        return f"{self.api_url}/models/{self.model}:generateContent"

    def transcribe(self, audio: bytes, mime_type: str) -> str:
        if not self.api_key:
            raise ConfigurationError(
                "Transcription API key is missing", missing_keys=["GEMINI_API_KEY"]
            )

        payload = build_request(audio, mime_type)
        logger.debug("Requesting transcription of %d bytes (%s)", len(audio), mime_type)
        try:
            response = requests.post(
                self.endpoint,
                json=payload,
                headers={"x-goog-api-key": self.api_key},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.Timeout as exc:
            logger.error("Transcription timed out after %.1fs", self.timeout)
            raise TranscriptionError(
                f"Transcription timed out after {self.timeout:g}s", kind=TranscriptionError.TIMEOUT
            ) from exc
        except requests.HTTPError as exc:
            status = exc.response.status_code if exc.response is not None else None
            logger.error("Transcription provider returned HTTP %s", status)
            raise TranscriptionError(
                f"Transcription provider returned HTTP {status}",
                kind=TranscriptionError.PROVIDER,
                status_code=status,
            ) from exc
        except requests.RequestException as exc:
            logger.exception("Failed to contact transcription provider at %s", self.endpoint)
            raise TranscriptionError(
                "Unable to reach transcription provider", kind=TranscriptionError.TRANSPORT
            ) from exc

        try:
            data = response.json()
        except ValueError as exc:
            raise TranscriptionError(
                "Transcription provider returned malformed JSON", kind=TranscriptionError.PROVIDER
            ) from exc
        return extract_text(data)


def build_request(audio: bytes, mime_type: str) -> dict:
    """Build the generateContent body: inline base64 audio plus the instruction."""
    return {
        "contents": [
            {
                "parts": [
                    {
                        "inline_data": {
                            "mime_type": mime_type or FALLBACK_MIME_TYPE,
                            "data": base64.b64encode(audio).decode("ascii"),
                        }
                    },
                    {"text": TRANSCRIBE_INSTRUCTION},
                ]
            }
        ]
    }


def extract_text(data: dict) -> str:
    """Pull the transcript out of a generateContent response, defaulting to ''."""
    if not isinstance(data, dict):
        raise TranscriptionError(
            "Transcription provider returned an unexpected payload", kind=TranscriptionError.PROVIDER
        )
    candidates = data.get("candidates") or []
    if not candidates:
        return ""
    try:
        parts = (candidates[0].get("content") or {}).get("parts") or []
        return "".join(part.get("text", "") for part in parts if isinstance(part, dict)).strip()
    except (AttributeError, TypeError, KeyError) as exc:
        raise TranscriptionError(
            "Transcription provider returned a malformed response", kind=TranscriptionError.PROVIDER
        ) from exc
