"""Image-generation backend for vision and chapter illustrations."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Protocol

import openai
from flask import current_app

from ..errors import UpstreamServiceError
from .text_generation import RateLimitedError, _describe_api_error

LOGGER = logging.getLogger(__name__)

GENERATOR_CACHE_KEY = "_IMAGE_GENERATOR_INSTANCE"


class ImageGenerator(Protocol):
    def generate_image(
        self,
        prompt: str,
        *,
        reference_image: Optional[str] = None,
        model: Optional[str] = None,
    ) -> str:
        ...


class OpenAICompatibleImageGenerator:
    """Image generation over an OpenAI-compatible ``images/generations`` API.

    The returned handle is either an embeddable ``data:`` URI (base64
    responses) or a remote URL. When a reference image is supplied and the
    active model is the reference-capable model, the image is attached so the
    result keeps the previous visual style.
    """

    def __init__(
        self,
        api_key: str,
        *,
        base_url: Optional[str] = None,
        model: str,
        reference_model: Optional[str] = None,
        width: int = 1792,
        height: int = 960,
        timeout: Optional[float] = None,
    ) -> None:
        if not (api_key or "").strip():
            raise RuntimeError("An API key is required for the image backend.")
        self.model = model
        self.reference_model = reference_model
        self.width = width
        self.height = height
        self._client = openai.OpenAI(api_key=api_key, base_url=base_url, timeout=timeout, max_retries=0)

    def generate_image(
        self,
        prompt: str,
        *,
        reference_image: Optional[str] = None,
        model: Optional[str] = None,
    ) -> str:
        if not isinstance(prompt, str) or not prompt.strip():
            raise ValueError("prompt is required")

        active_model = model or self.model
        attach_reference = bool(reference_image) and active_model == self.reference_model
        final_prompt = prompt
        if reference_image:
            final_prompt = (
                f"{prompt}\n\n(Style reference: generate an image consistent with the previous visual context)"
            )

        extra_body: Dict[str, Any] = {
            "width": self.width,
            "height": self.height,
            "steps": 28 if active_model == self.reference_model else 4,
        }
        if attach_reference:
            extra_body["image_url"] = reference_image
        LOGGER.debug("Generating image with %s (reference attached: %s)", active_model, attach_reference)

        try:
            resp = self._client.images.generate(
                model=active_model,
                prompt=final_prompt,
                n=1,
                response_format="b64_json",
                extra_body=extra_body,
            )
        except openai.RateLimitError as exc:
            raise RateLimitedError() from exc
        except openai.OpenAIError as exc:
            raise UpstreamServiceError(_describe_api_error(exc, "Image generation failed")) from exc

        data = getattr(resp, "data", None) or []
        if not data:
            raise UpstreamServiceError("No image was returned by the image provider.")
        first = data[0]
        b64_payload = getattr(first, "b64_json", None)
        if b64_payload:
            return f"data:image/png;base64,{b64_payload}"
        url = getattr(first, "url", None)
        if url:
            return url
        raise UpstreamServiceError("No image was returned by the image provider.")


def _get_image_generator() -> Optional[ImageGenerator]:  # pragma: no cover - integration point
    app = current_app
    if GENERATOR_CACHE_KEY in app.config:
        return app.config[GENERATOR_CACHE_KEY]

    generator: Optional[ImageGenerator] = None
    api_key = app.config.get("TOGETHER_API_KEY")
    if api_key:
        generator = OpenAICompatibleImageGenerator(
            api_key,
            base_url=app.config.get("TOGETHER_API_BASE"),
            model=app.config.get("IMAGE_MODEL", ""),
            reference_model=app.config.get("IMAGE_REFERENCE_MODEL"),
            width=app.config.get("IMAGE_WIDTH", 1792),
            height=app.config.get("IMAGE_HEIGHT", 960),
            timeout=app.config.get("AI_REQUEST_TIMEOUT"),
        )
    else:
        app.logger.info("TOGETHER_API_KEY not configured; image generation is disabled.")

    app.config[GENERATOR_CACHE_KEY] = generator
    return generator


def generate_image(prompt: str, *, reference_image: Optional[str] = None, model: Optional[str] = None) -> str:
    """Render ``prompt`` with the configured backend and return the image handle."""

    generator = _get_image_generator()
    if generator is None:
        raise UpstreamServiceError("Image generation is not configured.")

    try:
        image = generator.generate_image(prompt, reference_image=reference_image, model=model)
    except UpstreamServiceError:
        raise
    except Exception as exc:
        LOGGER.warning("Image backend raised %s: %s", type(exc).__name__, exc)
        raise UpstreamServiceError(str(exc) or "Image generation failed.") from exc

    if not image:
        raise UpstreamServiceError("No image was returned by the image provider.")
    return image
