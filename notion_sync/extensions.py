import os

from flask_apscheduler import APScheduler
from flask_sqlalchemy import SQLAlchemy

# Instantiate extensions
db = SQLAlchemy()
scheduler = APScheduler()


def _get_backfill_interval(app) -> int:
    """Seconds between two backfill steps, from BACKFILL_INTERVAL_SECONDS (default 10)."""
    try:
        return max(1, int(app.config.get("BACKFILL_INTERVAL_SECONDS", 10)))
    except (TypeError, ValueError):
        return 10


# Initialize with app
def init_extensions(app):
    """Initialize Flask extensions and register the background jobs."""
    db.init_app(app)

    should_skip_scheduler = (
        "pytest" in os.getenv("_", "")
        or os.getenv("PYTEST_CURRENT_TEST")
        or os.getenv("FLASK_SKIP_SCHEDULER") == "true"
        or os.getenv("NOTION_SYNC_DISABLE_SCHEDULER", "false").lower()
        in ("true", "1", "yes")
        or app.config.get("TESTING")
    )

    if should_skip_scheduler:
        return

    app.config["SCHEDULER_API_ENABLED"] = False  # Disable API for security

    scheduler.init_app(app)

    from notion_sync.tasks.backfill import run_backfill_steps

    # One backfill step per running tenant on every tick
    scheduler.add_job(
        id="backfill_step",
        func=lambda: run_backfill_steps(app),
        trigger="interval",
        seconds=_get_backfill_interval(app),
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )

    try:
        if not scheduler.running:
            scheduler.start()
            app.logger.info("APScheduler started successfully")
        else:
            app.logger.info("APScheduler already running")
    except Exception as e:
        app.logger.warning(f"Failed to start APScheduler: {e}")
