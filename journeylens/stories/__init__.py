from flask import Blueprint

bp = Blueprint("stories", __name__, url_prefix="/visions/<int:vision_id>/stories")

from . import routes  # noqa: E402,F401
