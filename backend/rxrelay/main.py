"""
RxRelay – Flask Application Factory
Serves the REST API behind the patient intake app and the clinician view.
"""

import logging

from flask import Flask, jsonify
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from werkzeug.exceptions import HTTPException, RequestEntityTooLarge

from rxrelay.config import Config
from rxrelay.constants import ADHERENCE_OPTIONS, CHIEF_COMPLAINTS, COURSE_STATUS
from rxrelay.database import db
from rxrelay.routes.adherence import adherence_bp
from rxrelay.routes.hospitals import hospitals_bp
from rxrelay.routes.intakes import intakes_bp
from rxrelay.routes.notifications import notifications_bp
from rxrelay.routes.prescriptions import prescriptions_bp
from rxrelay.routes.view import view_bp
from rxrelay.middleware.device_identity import device_identity_middleware
from rxrelay.middleware.audit_logger import audit_after_request
from rxrelay.services.hospital_service import seed_hospitals

logger = logging.getLogger("rxrelay.app")

limiter = Limiter(key_func=get_remote_address, default_limits=[Config.RATE_LIMIT_DEFAULT])

# Multipart overhead on top of the per-document limit
_FORM_OVERHEAD_BYTES = 1024 * 1024


def create_app() -> Flask:
    Config.validate()

    app = Flask(__name__)
    app.config["SECRET_KEY"] = Config.FLASK_SECRET_KEY
    app.config["SQLALCHEMY_DATABASE_URI"] = Config.DATABASE_URL
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    app.config["DEBUG"] = Config.APP_ENV == "development"
    app.config["MAX_CONTENT_LENGTH"] = (
        Config.MAX_UPLOAD_BYTES * Config.MAX_DOCUMENTS_PER_INTAKE + _FORM_OVERHEAD_BYTES
    )
    app.config["SESSION_COOKIE_HTTPONLY"] = True
    app.config["SESSION_COOKIE_SAMESITE"] = "Lax"
    app.config["RATELIMIT_ENABLED"] = Config.APP_ENV != "testing"

    # Extensions
    CORS(app, resources={r"/api/*": {"origins": "*"}})
    limiter.init_app(app)
    db.init_app(app)

    # Create tables if they don't already exist
    with app.app_context():
        from rxrelay.models import models as _models  # noqa: F401 – ensure all models are registered
        db.create_all()
        seed_hospitals()

    # Middleware
    app.before_request(device_identity_middleware)
    app.after_request(audit_after_request)

    # Share links are guessable only by brute force; keep that slow.
    limiter.limit(Config.RATE_LIMIT_VIEW)(view_bp)

    # Blueprints
    app.register_blueprint(hospitals_bp, url_prefix="/api/hospitals")
    app.register_blueprint(intakes_bp, url_prefix="/api/intakes")
    app.register_blueprint(view_bp, url_prefix="/api/view")
    app.register_blueprint(prescriptions_bp, url_prefix="/api/prescriptions")
    app.register_blueprint(adherence_bp, url_prefix="/api/adherence")
    app.register_blueprint(notifications_bp, url_prefix="/api/notifications")

    _register_error_handlers(app)

    # Health check
    @app.route("/api/health")
    def health():
        return {"status": "ok", "service": "rxrelay"}

    @app.route("/api/intake-options")
    def intake_options():
        """Option lists the intake form is built from."""
        return {
            "chief_complaints": CHIEF_COMPLAINTS,
            "course_status": COURSE_STATUS,
            "adherence": ADHERENCE_OPTIONS,
        }

    return app


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(RequestEntityTooLarge)
    def handle_413(e):
        return jsonify({
            "error": "Upload too large.",
            "limit_mb": app.config["MAX_CONTENT_LENGTH"] // (1024 * 1024),
        }), 413

    @app.errorhandler(HTTPException)
    def handle_http_exception(e: HTTPException):
        return jsonify({"error": e.name, "code": e.code, "description": e.description}), e.code

    @app.errorhandler(Exception)
    def handle_uncaught(e: Exception):
        logger.exception("Unhandled error on request")
        db.session.rollback()
        return jsonify({"error": "Internal server error"}), 500
