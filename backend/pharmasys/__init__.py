# backend/pharmasys/__init__.py
from flask import Flask, request

from .config import Config
from .extensions import MAILER_KEY, NOTIFIER_KEY, db, migrate


def build_notifier():
    """Default observer set, in notification order."""
    from .notifier import EventNotifier, LoginObserver, LowStockObserver, MFAObserver
    from .services.audit_service import AuditTrailObserver

    notifier = EventNotifier()
    notifier.subscribe(LoginObserver())
    notifier.subscribe(MFAObserver())
    notifier.subscribe(AuditTrailObserver())
    notifier.subscribe(LowStockObserver())
    return notifier


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    app.logger.setLevel(app.config["LOG_LEVEL"])

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    from .services.mail_service import build_mailer
    app.extensions[NOTIFIER_KEY] = build_notifier()
    app.extensions[MAILER_KEY] = build_mailer(app.config)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.mfa import mfa_bp
    from .routes.admin import admin_bp
    from .routes.medicines import medicines_bp
    from .routes.patients import patients_bp
    from .routes.doctors import doctors_bp
    from .routes.prescriptions import prescriptions_bp
    from .routes.suppliers import suppliers_bp
    from .routes.transactions import transactions_bp
    from .routes.orders import orders_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(mfa_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(medicines_bp)
    app.register_blueprint(patients_bp)
    app.register_blueprint(doctors_bp)
    app.register_blueprint(prescriptions_bp)
    app.register_blueprint(suppliers_bp)
    app.register_blueprint(transactions_bp)
    app.register_blueprint(orders_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin in app.config["CORS_ALLOWED_ORIGINS"]:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Credentials"] = "true"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
