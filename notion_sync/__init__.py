import logging
import os

from flask import Flask

from .extensions import db, init_extensions


def create_app(config=None):
    """Application factory.

    Args:
        config: Mapping of Flask config values applied over the defaults (optional)

    Returns:
        The configured Flask application
    """
    app = Flask(__name__)

    app.config["SQLALCHEMY_DATABASE_URI"] = os.getenv(
        "DATABASE_URL", "sqlite:///" + os.path.join(os.getcwd(), "database", "notion_sync.db")
    )
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    app.config["BACKFILL_INTERVAL_SECONDS"] = os.getenv("BACKFILL_INTERVAL_SECONDS", "10")
    if config:
        app.config.update(config)

    uri = app.config["SQLALCHEMY_DATABASE_URI"]
    if uri.startswith("sqlite:///") and not uri.startswith("sqlite:///:memory:"):
        os.makedirs(os.path.dirname(uri[len("sqlite:///"):]) or ".", exist_ok=True)

    if not app.debug:
        app.logger.setLevel(os.getenv("LOG_LEVEL", "INFO").upper())
        logging.basicConfig(
            level=os.getenv("LOG_LEVEL", "INFO").upper(),
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )

    from .services.entity_sync.registry import (
        BACKFILL_ENTITY_TYPES,
        validate_backfill_entities_complete,
        validate_registry,
    )

    # Fail fast on a broken registry
    validate_registry()
    validate_backfill_entities_complete(BACKFILL_ENTITY_TYPES)

    from .blueprints.sync.routes import sync_bp
    from .blueprints.webhooks.routes import webhooks_bp

    app.register_blueprint(webhooks_bp)
    app.register_blueprint(sync_bp)

    init_extensions(app)

    with app.app_context():
        from . import models  # noqa: F401

        db.create_all()

    return app
