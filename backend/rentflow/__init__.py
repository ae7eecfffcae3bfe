import pymysql
pymysql.install_as_MySQLdb()
from flask import Flask
from flask_cors import CORS

from .config import DevConfig
from .extensions import db, migrate, jwt, ma
from .utils.errors import register_error_handlers
from .api import (
    rental_routes,
    extension_routes,
    dispute_routes,
    admin_routes,
    payment_routes,
    notification_routes,
)
from .cli import deadlines_cli


def create_app(config_class=DevConfig) -> Flask:
    app = Flask(__name__)
    app.config.from_object(config_class)

    origins = [o.strip() for o in str(app.config.get("CORS_ORIGINS") or "").split(",") if o.strip()]
    CORS(
        app,
        resources={r"/api/*": {"origins": origins or "*"}},
        supports_credentials=True,
    )

    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)
    ma.init_app(app)

    # Models must be registered before create_all / migrations; the
    # notification service subscribes to domain events on import.
    from . import models  # noqa: F401
    from .services import notification_service  # noqa: F401

    app.register_blueprint(rental_routes.bp, url_prefix="/api/rentals")
    app.register_blueprint(extension_routes.bp, url_prefix="/api/extensions")
    app.register_blueprint(dispute_routes.bp, url_prefix="/api/disputes")
    app.register_blueprint(admin_routes.bp, url_prefix="/api/admin")
    app.register_blueprint(payment_routes.bp, url_prefix="/api/payments")
    app.register_blueprint(notification_routes.bp, url_prefix="/api/notifications")

    register_error_handlers(app)
    app.cli.add_command(deadlines_cli)

    @app.get("/api/health")
    def health_check():
        return {"status": "ok", "service": "rentflow"}

    return app
