from flask import jsonify, request
from flask_login import current_user, login_required

from ..errors import ValidationError
from ..services.advice import advise
from . import bp


@bp.route("/advice", methods=["POST"])
@login_required
def reply():
    payload = request.get_json(silent=True) or {}
    messages = payload.get("messages")
    if not isinstance(messages, list) or not all(isinstance(item, dict) for item in messages):
        raise ValidationError("Invalid messages format")

    vision_id = payload.get("vision_id")
    if vision_id is not None:
        try:
            vision_id = int(vision_id)
        except (TypeError, ValueError):
            raise ValidationError("vision_id must be an integer")

    text = advise(messages, current_user.id, vision_id)
    return jsonify({"text": text})
