from flask import Blueprint

bp = Blueprint("journals", __name__, url_prefix="/visions/<int:vision_id>/journals")

from . import routes  # noqa: E402,F401
