from __future__ import annotations

from flask import Flask, jsonify, url_for
from flask_login import logout_user
from flask_wtf.csrf import CSRFError

from .config import Config
from .errors import JourneyLensError, SessionInvalidError, ValidationError
from .extensions import csrf, db, login_manager, migrate
from .db_utils import ensure_database_schema


def create_app(config_class: type[Config] = Config) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_class)

    log_level = app.config.get("LOG_LEVEL")
    if log_level:
        app.logger.setLevel(log_level)

    register_extensions(app)
    register_blueprints(app)
    register_error_handlers(app)

    with app.app_context():
        ensure_database_schema()

    return app


def register_extensions(app: Flask) -> None:
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    login_manager.unauthorized_handler(_unauthorized)
    csrf.init_app(app)


def _unauthorized():
    return jsonify({"error": "Login required", "redirect": url_for("auth.login")}), 401


def register_blueprints(app: Flask) -> None:
    from .advice import bp as advice_bp
    from .auth import bp as auth_bp
    from .calibration import bp as calibration_bp
    from .journals import bp as journals_bp
    from .main import bp as main_bp
    from .media import bp as media_bp
    from .stories import bp as stories_bp
    from .visions import bp as visions_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(main_bp)
    app.register_blueprint(visions_bp)
    app.register_blueprint(calibration_bp)
    app.register_blueprint(journals_bp)
    app.register_blueprint(stories_bp)
    app.register_blueprint(media_bp)
    app.register_blueprint(advice_bp)


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(JourneyLensError)
    def handle_journeylens_error(exc: JourneyLensError):
        payload = {"error": str(exc)}
        if isinstance(exc, SessionInvalidError):
            logout_user()
            payload["redirect"] = url_for("auth.login")
        if isinstance(exc, ValidationError) and exc.fields:
            payload["fields"] = exc.fields
        if exc.status_code >= 500:
            app.logger.warning("%s: %s", type(exc).__name__, exc)
        return jsonify(payload), exc.status_code

    @app.errorhandler(CSRFError)
    def handle_csrf_error(exc: CSRFError):
        return jsonify({"error": exc.description}), 400
