"""
Account service for managing tenants and their Notion connection.
"""

from typing import Any, Dict, List, Optional

from notion_sync.extensions import db
from notion_sync.models import BackfillState, EntityMappingRow, TenantAccount
from notion_sync.services.entity_sync.registry import ENTITY_REGISTRY


class AccountService:
    """Service for managing tenant accounts."""

    @staticmethod
    def get_account(tenant_id: str) -> Optional[TenantAccount]:
        return TenantAccount.query.filter_by(tenant_id=tenant_id).first()

    @staticmethod
    def save_account(
        tenant_id: str,
        notion_token: Optional[str] = None,
        databases: Optional[Dict[str, str]] = None,
    ) -> TenantAccount:
        """
        Create a tenant account or update its Notion connection.

        Args:
            tenant_id: Connected Stripe account ID
            notion_token: Notion integration token (unchanged when None)
            databases: Notion database ID per entity type (unchanged when None)

        Returns:
            The saved TenantAccount

        Raises:
            ValueError: If a database is given for an unknown entity type
        """
        if databases:
            unknown = sorted(set(databases) - set(ENTITY_REGISTRY))
            if unknown:
                raise ValueError(f"Unknown entity types: {', '.join(unknown)}")

        account = AccountService.get_account(tenant_id)
        if account is None:
            account = TenantAccount(tenant_id=tenant_id, databases={}, entity_errors={})
            db.session.add(account)

        if notion_token is not None:
            account.notion_token = notion_token
            account.token_error = None
        if databases is not None:
            account.databases = {k: v for k, v in databases.items() if v}

        db.session.commit()
        return account

    @staticmethod
    def get_status(tenant_id: str) -> Optional[Dict[str, Any]]:
        """Get the connection and error status of a tenant."""
        account = AccountService.get_account(tenant_id)
        if account is None:
            return None

        mapping_count = EntityMappingRow.query.filter_by(tenant_id=tenant_id).count()
        return {
            "tenant_id": account.tenant_id,
            "notion_connected": bool(account.notion_token),
            "databases": dict(account.databases or {}),
            "entity_errors": dict(account.entity_errors or {}),
            "token_error": account.token_error,
            "mapping_count": mapping_count,
        }

    @staticmethod
    def get_backfill_tenants() -> List[str]:
        """Tenants with a backfill that still has work to do."""
        states = BackfillState.query.filter(
            BackfillState.status.in_(["pending", "running"])
        ).order_by(BackfillState.updated_at).all()
        return [state.tenant_id for state in states]
