# backend/backoffice/__init__.py
from flask import Flask, request

from .config import Config
from .extensions import db, migrate
from .tasks import task_queue


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    from .services.session_service import build_session_store
    app.extensions["session_store"] = build_session_store(app.config["SESSION_STORE"])

    task_queue.init_app(app)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.products import products_bp, catalog_admin_bp
    from .routes.orders import orders_bp
    from .routes.inventory import inventory_bp
    from .routes.customers import customers_bp, customers_admin_bp
    from .routes.auth import auth_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(catalog_admin_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(customers_bp)
    app.register_blueprint(customers_admin_bp)
    app.register_blueprint(auth_bp)

    allowed_origins = set(app.config.get("CORS_ORIGINS", ()))

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
