"""Background tasks driving the Stripe to Notion backfill."""

import logging


def run_backfill_steps(app=None):
    """Run one backfill step for every tenant with a backfill in progress.

    A failing step leaves the persisted cursor where it was, so the next run
    of the job retries it.

    Args:
        app: Flask application instance. If None, will try to get from current context.
    """
    if app is None:
        from flask import current_app

        try:
            app = current_app._get_current_object()  # type: ignore
        except RuntimeError:
            logging.error(
                "run_backfill_steps called outside application context and no app provided"
            )
            return

    with app.app_context():
        from notion_sync.extensions import db
        from notion_sync.services.account_service import AccountService
        from notion_sync.services.sync_service import SyncService

        if not SyncService.is_backfill_enabled():
            logging.debug("Backfill skipped - disabled in settings")
            return

        for tenant_id in AccountService.get_backfill_tenants():
            try:
                driver = SyncService.get_backfill_driver(tenant_id)
                if driver is None:
                    logging.info("Backfill skipped for %s - sync not configured", tenant_id)
                    continue

                more = driver.step()
                progress = driver.status()
                logging.info(
                    "Backfill step for %s: %s records processed, status %s",
                    tenant_id,
                    progress.records_processed if progress else 0,
                    progress.status if progress else "unknown",
                )
                if not more:
                    logging.info("Backfill completed for %s", tenant_id)

            except Exception as e:
                logging.error("Backfill step failed for %s: %s", tenant_id, e, exc_info=True)
                db.session.rollback()
