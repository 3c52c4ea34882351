"""Text-generation backends and the lookup used by the service layer.

Two backends implement the same ``generate(messages)`` contract:

* :class:`OpenAICompatibleChatGenerator` talks to any OpenAI-compatible chat
  completions API (Together AI by default) through the ``openai`` SDK.
* :class:`journeylens.services.local_model.LocalChatGenerator` runs a Hugging
  Face model in-process when ``TEXT_GENERATOR_MODEL_PATH`` is configured.

Messages are plain ``{"role": ..., "content": ...}`` dictionaries with roles
``system``, ``user`` or ``assistant``.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol

import openai
from flask import current_app

from ..errors import UpstreamServiceError

LOGGER = logging.getLogger(__name__)

GENERATOR_CACHE_KEY = "_TEXT_GENERATOR_INSTANCE"

_ROLE_ALIASES = {
    "model": "assistant",
    "ai": "assistant",
    "assistant": "assistant",
    "system": "system",
    "user": "user",
}


class TextGenerator(Protocol):
    def generate(self, messages: List[Dict[str, str]], **kwargs: Any) -> str:
        ...


class RateLimitedError(UpstreamServiceError):
    """Raised when the provider reports a rate limit condition."""

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or "The AI provider rate limit has been exceeded. Please try again shortly.")


def normalise_messages(messages: Iterable[Mapping[str, Any]]) -> List[Dict[str, str]]:
    """Return ``messages`` with roles mapped onto system/user/assistant."""

    normalised: List[Dict[str, str]] = []
    for message in messages:
        role = str(message.get("role") or "user").strip().lower()
        content = message.get("content")
        normalised.append(
            {
                "role": _ROLE_ALIASES.get(role, "user"),
                "content": content if isinstance(content, str) else str(content or ""),
            }
        )
    return normalised


class OpenAICompatibleChatGenerator:
    """Chat completions client for OpenAI-compatible providers."""

    def __init__(
        self,
        model_name: str,
        api_key: str,
        *,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        default_max_tokens: Optional[int] = None,
    ) -> None:
        self.model_name = (model_name or "").strip()
        self.api_key = (api_key or "").strip()
        if not self.model_name or not self.api_key:
            raise RuntimeError("A model name and API key are required for the chat backend.")
        self.default_max_tokens = default_max_tokens
        # The pipelines define their own fallbacks; never retry behind their back.
        self._client = openai.OpenAI(
            api_key=self.api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=0,
        )

    def generate(
        self,
        messages: List[Dict[str, str]],
        *,
        max_new_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        top_p: Optional[float] = None,
    ) -> str:
        payload = normalise_messages(messages)
        if not payload:
            raise ValueError("messages must contain at least one entry.")

        kwargs: Dict[str, Any] = {"model": self.model_name, "messages": payload}
        max_tokens = max_new_tokens if max_new_tokens is not None else self.default_max_tokens
        if max_tokens is not None:
            kwargs["max_tokens"] = int(max_tokens)
        if temperature is not None:
            kwargs["temperature"] = float(temperature)
        if top_p is not None:
            kwargs["top_p"] = float(top_p)

        try:
            resp = self._client.chat.completions.create(**kwargs)
        except openai.RateLimitError as exc:
            raise RateLimitedError() from exc
        except openai.OpenAIError as exc:
            raise UpstreamServiceError(_describe_api_error(exc, "Chat completion failed")) from exc

        return self._extract_text_from_chat(resp).strip()

    def signature(self) -> tuple[str, str]:
        # Never return raw secrets
        redacted = (self.api_key[:4] + "…" + self.api_key[-4:]) if self.api_key else ""
        return (self.model_name, redacted)

    def _extract_text_from_chat(self, resp: Any) -> str:
        choices = getattr(resp, "choices", []) or []
        if not choices:
            return ""
        msg = getattr(choices[0], "message", None)
        if isinstance(msg, dict):
            content = msg.get("content")
        else:
            content = getattr(msg, "content", None)
        if isinstance(content, list):
            parts = [
                str(part.get("text") or "")
                for part in content
                if isinstance(part, dict) and part.get("type") == "text"
            ]
            return "\n".join(part for part in parts if part)
        return str(content or "")


def _describe_api_error(exc: Exception, default: str) -> str:
    message = getattr(exc, "message", None) or str(exc)
    message = " ".join(str(message).split())
    if len(message) > 300:
        message = message[:300] + "…"
    return message or default


def _get_text_generator() -> Optional[TextGenerator]:  # pragma: no cover - integration point
    app = current_app
    if GENERATOR_CACHE_KEY in app.config:
        return app.config[GENERATOR_CACHE_KEY]

    generator: Optional[TextGenerator] = None
    model_path = app.config.get("TEXT_GENERATOR_MODEL_PATH")
    api_key = app.config.get("TOGETHER_API_KEY")

    if model_path:
        try:
            from .local_model import LocalChatGenerator

            app.logger.info("Initialising local text generator with model path: %s", model_path)
            generator = LocalChatGenerator(model_path=model_path)
        except Exception as exc:
            app.logger.warning("Failed to initialise local text generator at '%s': %s", model_path, exc)
    elif api_key:
        generator = OpenAICompatibleChatGenerator(
            app.config.get("CHAT_MODEL", ""),
            api_key,
            base_url=app.config.get("TOGETHER_API_BASE"),
            timeout=app.config.get("AI_REQUEST_TIMEOUT"),
        )
        app.logger.info("Using remote text generator %s (%s)", *generator.signature())
    else:
        app.logger.info("No text generation backend configured (TOGETHER_API_KEY / TEXT_GENERATOR_MODEL_PATH).")

    app.config[GENERATOR_CACHE_KEY] = generator
    return generator


def generate_text(messages: List[Dict[str, str]], **kwargs: Any) -> str:
    """Run ``messages`` through the configured backend and return the reply.

    Any backend failure is reported as :class:`UpstreamServiceError` so the
    pipelines can decide between their fallback and aborting.
    """

    generator = _get_text_generator()
    if generator is None:
        raise UpstreamServiceError("Text generation is not configured.")

    filtered = {key: value for key, value in kwargs.items() if value is not None}
    try:
        return (generator.generate(messages, **filtered) or "").strip()
    except UpstreamServiceError:
        raise
    except Exception as exc:
        LOGGER.warning("Text generation backend raised %s: %s", type(exc).__name__, exc)
        raise UpstreamServiceError(str(exc) or "Text generation failed.") from exc
