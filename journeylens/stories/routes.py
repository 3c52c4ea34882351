from flask import current_app, jsonify, request
from flask_login import current_user, login_required

from ..errors import ValidationError
from ..serialisers import story_to_dict
from ..services import gateway
from ..services.illustration import render_chapter_image
from . import bp


@bp.route("", methods=["GET"])
@login_required
def index(vision_id: int):
    vision = gateway.get_vision(vision_id, current_user.id)
    return jsonify({"stories": [story_to_dict(story) for story in gateway.list_stories(vision.id)]})


@bp.route("/<int:story_id>/image", methods=["PUT"])
@login_required
def update_image(vision_id: int, story_id: int):
    """Replace a chapter illustration, generating a new one unless an image is supplied."""

    vision = gateway.get_vision(vision_id, current_user.id)
    story = gateway.get_story(story_id, vision.id)
    payload = request.get_json(silent=True) or {}

    prompt = payload.get("prompt")
    chapter = payload.get("chapter")
    if chapter is not None:
        try:
            chapter = int(chapter)
        except (TypeError, ValueError):
            raise ValidationError("chapter must be an integer")

    image = payload.get("image")
    if not image:
        effective_prompt = (prompt or story.primary_image.get("prompt") or "").strip()
        if not effective_prompt:
            raise ValidationError("Prompt is required")
        result = render_chapter_image(
            effective_prompt,
            character_description=vision.character_description or "",
            reference_image=vision.image_url or None,
        )
        if not result.value:
            current_app.logger.warning("Story image regeneration failed: %s", result.error)
            return jsonify({"error": result.error or "Image generation failed."}), 502
        image = result.value

    story = gateway.update_story_image(story.id, image=image, prompt=prompt, chapter=chapter)
    return jsonify({"story": story_to_dict(story)})
