"""Sync Service - builds per-tenant EntitySyncEngine instances from settings."""

import logging
import os
from typing import Optional

from notion_sync.extensions import db
from notion_sync.models import Settings
from notion_sync.services.account_service import AccountService
from notion_sync.services.entity_sync.backfill import BackfillDriver
from notion_sync.services.entity_sync.engine import EntitySyncEngine
from notion_sync.services.entity_sync.storage import SqlBackfillStore, SqlTenantStatusStore
from notion_sync.services.entity_sync.types import EntitySyncConfig


class SyncService:
    """Entry point for webhook and backfill processing of a tenant."""

    # Replaced in tests to plug fake Stripe and Notion clients
    engine_factory = staticmethod(EntitySyncEngine.from_config)

    @classmethod
    def get_config(cls, tenant_id: str) -> Optional[EntitySyncConfig]:
        """Build the engine configuration of a tenant.

        Args:
            tenant_id: Connected Stripe account ID

        Returns:
            Optional[EntitySyncConfig]: None when Stripe or Notion is not configured
        """
        stripe_secret_key = cls._get_setting("stripe_secret_key", os.getenv("STRIPE_SECRET_KEY"))
        if not stripe_secret_key:
            logging.info("Sync skipped for %s - Stripe secret key not configured", tenant_id)
            return None

        account = AccountService.get_account(tenant_id)
        if account is None or not account.notion_token:
            logging.info("Sync skipped for %s - no Notion connection", tenant_id)
            return None

        return EntitySyncConfig(
            tenant_id=tenant_id,
            stripe_secret_key=stripe_secret_key,
            notion_token=account.notion_token,
            databases=dict(account.databases or {}),
            stripe_api_version=cls._get_setting("stripe_api_version", os.getenv("STRIPE_API_VERSION")),
            notion_min_request_interval=cls._get_float_setting("notion_min_request_interval", 0.34),
            backfill_page_size=int(cls._get_float_setting("backfill_page_size", 1)),
            logger=logging.getLogger(f"notion_sync.sync.{tenant_id}"),
        )

    @classmethod
    def get_engine(cls, tenant_id: str) -> Optional[EntitySyncEngine]:
        config = cls.get_config(tenant_id)
        if config is None:
            return None
        return cls.engine_factory(config, status=SqlTenantStatusStore(tenant_id))

    @classmethod
    def get_backfill_driver(cls, tenant_id: str) -> Optional[BackfillDriver]:
        engine = cls.get_engine(tenant_id)
        if engine is None:
            return None
        return BackfillDriver(engine, SqlBackfillStore(tenant_id))

    @classmethod
    def get_webhook_secret(cls) -> Optional[str]:
        return cls._get_setting("stripe_webhook_secret", os.getenv("STRIPE_WEBHOOK_SECRET"))

    @classmethod
    def get_api_key(cls) -> Optional[str]:
        return cls._get_setting("sync_api_key", os.getenv("SYNC_API_KEY"))

    @classmethod
    def get_default_tenant(cls) -> Optional[str]:
        return cls._get_setting("default_tenant_id", os.getenv("DEFAULT_TENANT_ID"))

    @classmethod
    def is_backfill_enabled(cls) -> bool:
        value = cls._get_setting("backfill_enabled", os.getenv("BACKFILL_ENABLED", "true"))
        return str(value).lower() not in ("false", "0", "no")

    @classmethod
    def _get_float_setting(cls, key: str, default: float) -> float:
        value = cls._get_setting(key, os.getenv(key.upper()))
        try:
            return float(value) if value not in (None, "") else default
        except (TypeError, ValueError):
            logging.warning("Ignoring invalid %s setting: %r", key, value)
            return default

    @staticmethod
    def _get_setting(key: str, default: Optional[str] = None) -> Optional[str]:
        """Read a setting from the database.

        Args:
            key: Setting key to retrieve
            default: Default value if setting doesn't exist

        Returns:
            Optional[str]: Setting value or default
        """
        setting = db.session.query(Settings).filter_by(key=key).first()
        return setting.value if setting and setting.value is not None else default
