from flask import jsonify, url_for
from flask_login import current_user

from ..serialisers import user_to_dict
from . import bp


@bp.route("/")
def index():
    if current_user.is_authenticated:
        return jsonify({"user": user_to_dict(current_user), "visions": url_for("visions.index")})
    return jsonify({"user": None, "login": url_for("auth.login")})


@bp.route("/health")
def health():
    return jsonify({"status": "ok"})
