from flask import Blueprint

bp = Blueprint("visions", __name__, url_prefix="/visions")

from . import routes  # noqa: E402,F401
