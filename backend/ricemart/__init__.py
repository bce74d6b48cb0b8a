# backend/ricemart/__init__.py
from flask import Flask, request

from .config import Config
from .extensions import db, migrate


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    # Overrides must land before db.init_app, which builds the engine
    if config_overrides:
        app.config.update(config_overrides)

    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.products import products_bp
    from .routes.orders import orders_bp
    from .routes.online_transfer import online_transfer_bp
    from .routes.company_accounts import company_accounts_bp
    from .routes.payment_methods import payment_methods_bp
    from .routes.uploads import uploads_bp, media_bp
    from .routes.admin import admin_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(online_transfer_bp)
    app.register_blueprint(company_accounts_bp)
    app.register_blueprint(payment_methods_bp)
    app.register_blueprint(uploads_bp)
    app.register_blueprint(media_bp)
    app.register_blueprint(admin_bp)

    register_error_handlers(app)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin in app.config["CORS_ALLOWED_ORIGINS"]:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app


def register_error_handlers(app: Flask) -> None:
    """Errors raised outside the route try/except blocks still get the envelope."""
    from .responses import error

    @app.errorhandler(404)
    def not_found(_e):
        return error("Resource not found", 404)

    @app.errorhandler(405)
    def method_not_allowed(_e):
        return error("Method not allowed", 405)

    @app.errorhandler(413)
    def payload_too_large(_e):
        return error("Upload exceeds the maximum allowed size", 413)

    @app.errorhandler(500)
    def internal_server_error(_e):
        return error("Internal server error", 500)
