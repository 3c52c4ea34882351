"""Vision and chapter illustrations on top of the image backend."""

from __future__ import annotations

from typing import Optional

from flask import current_app

from .image_generation import generate_image
from .results import StageResult, run_stage


def compose_chapter_prompt(
    prompt: str,
    character_description: str = "",
    *,
    has_reference: bool = False,
) -> str:
    lines = [prompt]
    if character_description:
        lines.append(f"Keep the established character style: {character_description}")
    if has_reference:
        lines.append("Keep the character consistent with the existing vision image.")
    return "\n".join(lines)


def render_vision_image(subject: str) -> StageResult[str]:
    """Render the main vision image; failure degrades to an empty handle."""

    if not subject:
        return StageResult.degraded("", "nothing to illustrate")
    return run_stage("vision image", lambda: generate_image(subject), fallback="")


def render_chapter_image(
    prompt: str,
    *,
    character_description: str = "",
    reference_image: Optional[str] = None,
) -> StageResult[str]:
    """Render a chapter illustration, conditioned on ``reference_image`` when given."""

    if not prompt:
        return StageResult.degraded("", "no illustration prompt")

    combined = compose_chapter_prompt(
        prompt,
        character_description,
        has_reference=bool(reference_image),
    )
    model = current_app.config.get("IMAGE_REFERENCE_MODEL") if reference_image else None
    return run_stage(
        "chapter image",
        lambda: generate_image(combined, reference_image=reference_image or None, model=model),
        fallback="",
    )
