"""Speech synthesis and transcription adapters."""

from __future__ import annotations

import base64
import logging
from typing import Optional

import openai
from flask import current_app

from ..errors import UpstreamServiceError, ValidationError
from .text_generation import RateLimitedError, _describe_api_error

LOGGER = logging.getLogger(__name__)

CLIENT_CACHE_KEY = "_SPEECH_CLIENT_INSTANCE"


class SpeechClient:
    """Text-to-speech and speech-to-text over OpenAI-compatible audio APIs.

    Synthesis and transcription may live with different providers, so each
    direction gets its own client.
    """

    def __init__(
        self,
        *,
        tts_api_key: Optional[str],
        tts_base_url: Optional[str],
        tts_model: str,
        tts_voice: str,
        asr_api_key: Optional[str],
        asr_base_url: Optional[str],
        asr_model: str,
        timeout: Optional[float] = None,
    ) -> None:
        self.tts_model = tts_model
        self.tts_voice = tts_voice
        self.asr_model = asr_model
        self._tts_client = (
            openai.OpenAI(api_key=tts_api_key, base_url=tts_base_url, timeout=timeout, max_retries=0)
            if tts_api_key
            else None
        )
        self._asr_client = (
            openai.OpenAI(api_key=asr_api_key, base_url=asr_base_url, timeout=timeout, max_retries=0)
            if asr_api_key
            else None
        )

    def synthesize(self, text: str, *, model: Optional[str] = None, voice: Optional[str] = None) -> str:
        """Return base64-encoded mp3 audio for ``text``."""

        if self._tts_client is None:
            raise UpstreamServiceError("Speech synthesis is not configured.")
        try:
            resp = self._tts_client.audio.speech.create(
                model=model or self.tts_model,
                voice=voice or self.tts_voice,
                input=text,
                response_format="mp3",
            )
        except openai.RateLimitError as exc:
            raise RateLimitedError() from exc
        except openai.OpenAIError as exc:
            raise UpstreamServiceError(_describe_api_error(exc, "TTS request failed")) from exc

        audio_bytes = resp.content
        if not audio_bytes:
            raise UpstreamServiceError("No audio returned from TTS service")
        return base64.b64encode(audio_bytes).decode("ascii")

    def transcribe(self, audio: bytes, mime_type: str, *, filename: str = "audio.webm") -> str:
        if self._asr_client is None:
            raise UpstreamServiceError("Speech transcription is not configured.")
        try:
            resp = self._asr_client.audio.transcriptions.create(
                model=self.asr_model,
                file=(filename, audio, mime_type or "application/octet-stream"),
            )
        except openai.RateLimitError as exc:
            raise RateLimitedError() from exc
        except openai.OpenAIError as exc:
            raise UpstreamServiceError(_describe_api_error(exc, "Transcription failed")) from exc

        return (getattr(resp, "text", "") or "").strip()


def _get_speech_client() -> SpeechClient:  # pragma: no cover - integration point
    app = current_app
    client = app.config.get(CLIENT_CACHE_KEY)
    if client is None:
        client = SpeechClient(
            tts_api_key=app.config.get("DEEPINFRA_API_KEY"),
            tts_base_url=app.config.get("DEEPINFRA_API_BASE"),
            tts_model=app.config.get("TTS_MODEL", ""),
            tts_voice=app.config.get("TTS_VOICE", ""),
            asr_api_key=app.config.get("TOGETHER_API_KEY"),
            asr_base_url=app.config.get("TOGETHER_API_BASE"),
            asr_model=app.config.get("ASR_MODEL", ""),
            timeout=app.config.get("AI_REQUEST_TIMEOUT"),
        )
        app.config[CLIENT_CACHE_KEY] = client
    return client


def synthesize_speech(text: str, *, model: Optional[str] = None, voice: Optional[str] = None) -> str:
    if not isinstance(text, str) or not text.strip():
        raise ValidationError("Text is required")
    return _get_speech_client().synthesize(text, model=model, voice=voice)


def transcribe_audio(audio: bytes, mime_type: str, *, filename: str = "audio.webm") -> str:
    if not audio:
        raise ValidationError("No audio file provided")
    return _get_speech_client().transcribe(audio, mime_type, filename=filename)
