from flask import Blueprint

bp = Blueprint("calibration", __name__, url_prefix="/calibration")

from . import routes  # noqa: E402,F401
