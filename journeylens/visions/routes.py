from flask import Response, current_app, jsonify, request
from flask_login import current_user, login_required

from ..errors import ValidationError
from ..serialisers import vision_to_dict
from ..services import gateway
from ..services.export import export_story_to_pdf, export_story_to_txt
from ..services.image_generation import generate_image
from . import bp

# Accepted request keys and the column each one updates.
_UPDATE_FIELDS = {
    "title": "title",
    "description": "description",
    "character_description": "character_description",
    "characterDescription": "character_description",
    "image_url": "image_url",
    "imageUrl": "image_url",
    "long_term_todos": "long_term_todos",
    "longTermTodos": "long_term_todos",
    "short_term_todos": "short_term_todos",
    "shortTermTodos": "short_term_todos",
}


@bp.route("", methods=["GET"])
@login_required
def index():
    visions = gateway.list_visions(current_user.id)
    return jsonify({"visions": [vision_to_dict(vision) for vision in visions]})


@bp.route("/<int:vision_id>", methods=["GET"])
@login_required
def detail(vision_id: int):
    vision = gateway.get_vision(vision_id, current_user.id)
    return jsonify({"vision": vision_to_dict(vision, include_history=True)})


@bp.route("/<int:vision_id>", methods=["PUT", "PATCH"])
@login_required
def update(vision_id: int):
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValidationError("Expected a JSON object")

    changes = {column: payload[key] for key, column in _UPDATE_FIELDS.items() if key in payload}
    for column in ("long_term_todos", "short_term_todos"):
        if column in changes and not isinstance(changes[column], list):
            raise ValidationError(f"{column} must be a list")

    vision = gateway.update_vision(vision_id, current_user.id, changes)
    return jsonify({"vision": vision_to_dict(vision)})


@bp.route("/<int:vision_id>", methods=["DELETE"])
@login_required
def delete(vision_id: int):
    gateway.delete_vision(vision_id, current_user.id)
    current_app.logger.info("Deleted vision %s for user %s", vision_id, current_user.id)
    return jsonify({"deleted": vision_id})


@bp.route("/<int:vision_id>/image", methods=["POST"])
@login_required
def regenerate_image(vision_id: int):
    vision = gateway.get_vision(vision_id, current_user.id)
    payload = request.get_json(silent=True) or {}
    prompt = (payload.get("prompt") or "").strip() or vision.character_description or vision.description or vision.title
    if not prompt:
        raise ValidationError("Prompt is required")

    image = generate_image(prompt)
    vision = gateway.update_vision(vision.id, current_user.id, {"image_url": image})
    return jsonify({"vision": vision_to_dict(vision)})


@bp.route("/<int:vision_id>/export.txt", methods=["GET"])
@login_required
def export_txt(vision_id: int):
    vision = gateway.get_vision(vision_id, current_user.id)
    text = export_story_to_txt(vision, gateway.list_stories(vision.id))
    return Response(
        text,
        mimetype="text/plain; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="vision-{vision.id}.txt"'},
    )


@bp.route("/<int:vision_id>/export.pdf", methods=["GET"])
@login_required
def export_pdf(vision_id: int):
    vision = gateway.get_vision(vision_id, current_user.id)
    document = export_story_to_pdf(vision, gateway.list_stories(vision.id))
    return Response(
        document,
        mimetype="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="vision-{vision.id}.pdf"'},
    )
