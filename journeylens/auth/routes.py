from flask import current_app, jsonify
from flask_login import current_user, login_required, login_user, logout_user
from flask_wtf.csrf import generate_csrf
from sqlalchemy.exc import IntegrityError

from ..errors import ValidationError
from ..extensions import db
from ..models import User
from ..serialisers import user_to_dict
from . import bp
from .forms import LoginForm, RegistrationForm


@bp.route("/csrf-token", methods=["GET"])
def csrf_token():
    return jsonify({"csrf_token": generate_csrf()})


@bp.route("/register", methods=["POST"])
def register():
    form = RegistrationForm()
    if not form.validate_on_submit():
        if "Username already exists." in form.errors.get("username", []):
            return jsonify({"error": "Username already exists."}), 409
        raise ValidationError.from_form(form)

    user = User(username=form.username.data.strip().lower(), fullname=form.fullname.data.strip())
    user.set_password(form.password.data)
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify({"error": "Username already exists."}), 409
    current_app.logger.info("Registered user %s", user.username)
    login_user(user)
    return jsonify({"user": user_to_dict(user)}), 201


@bp.route("/login", methods=["GET", "POST"])
def login():
    form = LoginForm()
    if not form.is_submitted():
        if current_user.is_authenticated:
            return jsonify({"user": user_to_dict(current_user)})
        return jsonify({"error": "Please log in."}), 401

    if not form.validate():
        raise ValidationError.from_form(form)

    user = User.query.filter_by(username=form.username.data.strip().lower()).first()
    if user is None or not user.check_password(form.password.data):
        return jsonify({"error": "Invalid username or password."}), 401

    login_user(user)
    return jsonify({"user": user_to_dict(user)})


@bp.route("/logout", methods=["POST"])
@login_required
def logout():
    logout_user()
    return jsonify({"message": "You have been signed out."})


@bp.route("/me", methods=["GET"])
@login_required
def me():
    return jsonify({"user": user_to_dict(current_user)})
