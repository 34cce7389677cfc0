from flask import Flask
from datetime import datetime
from marshmallow import ValidationError as SchemaValidationError
from .config import CONFIGS, DevelopmentConfig
from .extensions import db, ma, cors, vault, ledger, notifier
import logging
import os


def configure_logging(app):
    level = app.config.get("LOG_LEVEL", "INFO")
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app.logger.setLevel(level)


def create_app(config_name=None):
    app = Flask(__name__, instance_relative_config=False)
    env = config_name or os.getenv("FLASK_ENV", "development")
    app.config.from_object(CONFIGS.get(env, DevelopmentConfig))
    configure_logging(app)
    if app.config.get("FEE_SOLVENCY_BOUND", "upper") not in ("upper", "lower"):
        raise ValueError("FEE_SOLVENCY_BOUND must be 'upper' or 'lower'")

    # initialize extensions
    db.init_app(app)
    ma.init_app(app)
    origins = [o.strip() for o in app.config["CORS_ORIGINS"].split(",")]
    cors.init_app(
        app,
        resources={r"/api/*": {"origins": origins}},
        allow_headers=["Content-Type"],
        methods=["GET", "POST", "PUT", "OPTIONS"],
    )
    vault.init_app(app)
    ledger.init_app(app)
    notifier.init_app(app)

    # register blueprints
    from custody.routes.auth_routes import bp as auth_bp
    from custody.routes.wallet_routes import bp as wallet_bp
    from custody.routes.transaction_routes import bp as transaction_bp
    from custody.routes.user_routes import bp as user_bp
    from custody.routes.event_routes import bp as event_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(wallet_bp)
    app.register_blueprint(transaction_bp)
    app.register_blueprint(user_bp)
    app.register_blueprint(event_bp)

    from custody.utils.response_formatter import error_response, service_error_response, success_response
    from custody.utils.exceptions import ServiceError

    @app.route("/api/v1/health", methods=["GET"])
    def health():
        return success_response({"status": "ok", "timestamp": datetime.utcnow().isoformat() + "Z"})

    # error handlers to match required error format
    @app.errorhandler(ServiceError)
    def service_error(e):
        if e.status >= 500:
            app.logger.error("%s: %s", e.code, e.message)
        return service_error_response(e)

    @app.errorhandler(SchemaValidationError)
    def schema_error(e):
        return error_response("VALIDATION_ERROR", "Invalid input data", details=e.messages, status=400)

    @app.errorhandler(400)
    def bad_request(e):
        return error_response("BAD_REQUEST", "Malformed request", status=400)

    @app.errorhandler(404)
    def not_found(e):
        return error_response("NOT_FOUND", "Resource not found", status=404)

    @app.errorhandler(405)
    def method_not_allowed(e):
        return error_response("METHOD_NOT_ALLOWED", "Method not allowed", status=405)

    @app.errorhandler(500)
    def server_error(e):
        return error_response("SERVER_ERROR", "Internal server error", status=500)

    if app.config.get("AUTO_CREATE_TABLES", True):
        from custody.models import user, wallet, balance, transaction  # noqa: F401
        with app.app_context():
            db.create_all()

    return app
