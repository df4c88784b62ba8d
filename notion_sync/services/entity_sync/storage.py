"""Durable state of the sync engine: mappings, backfill progress and tenant error flags.

The SQL stores use the Flask-SQLAlchemy session and must be called inside an
application context.
"""

import copy
import threading
from datetime import UTC, datetime
from typing import Dict, List, Optional

from notion_sync.extensions import db
from notion_sync.models import BackfillState, EntityMappingRow, TenantAccount

from .types import BackfillProgress, EntityMapping


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands datetimes back without tzinfo
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class SqlMappingStore:
    """Mapping store of one tenant backed by the `entity_mappings` table."""

    def __init__(self, tenant_id: str):
        self.tenant_id = tenant_id

    def load_all(self) -> List[EntityMapping]:
        rows = EntityMappingRow.query.filter_by(tenant_id=self.tenant_id).all()
        return [
            EntityMapping(
                entity_type=row.entity_type,
                source_id=row.source_id,
                destination_id=row.destination_id,
                created_at=_aware(row.created_at),
                updated_at=_aware(row.updated_at),
                data_hash=row.data_hash,
            )
            for row in rows
        ]

    def save(self, mapping: EntityMapping) -> None:
        row = EntityMappingRow.query.filter_by(
            tenant_id=self.tenant_id,
            entity_type=mapping.entity_type,
            source_id=mapping.source_id,
        ).first()
        if row is None:
            row = EntityMappingRow(
                tenant_id=self.tenant_id,
                entity_type=mapping.entity_type,
                source_id=mapping.source_id,
            )
            db.session.add(row)

        row.destination_id = mapping.destination_id
        row.data_hash = mapping.data_hash
        row.created_at = mapping.created_at
        row.updated_at = mapping.updated_at

        try:
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

    def delete_all(self) -> int:
        try:
            deleted = EntityMappingRow.query.filter_by(tenant_id=self.tenant_id).delete()
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        return deleted


class MemoryMappingStore:
    """Process-local mapping store, used for dry runs and unit tests."""

    def __init__(self, tenant_id: str):
        self.tenant_id = tenant_id
        self._rows: Dict[str, EntityMapping] = {}
        self._lock = threading.Lock()

    def load_all(self) -> List[EntityMapping]:
        with self._lock:
            return [copy.copy(mapping) for mapping in self._rows.values()]

    def save(self, mapping: EntityMapping) -> None:
        with self._lock:
            self._rows[mapping.key] = copy.copy(mapping)

    def delete_all(self) -> int:
        with self._lock:
            deleted = len(self._rows)
            self._rows.clear()
        return deleted


class SqlBackfillStore:
    """Backfill progress of one tenant backed by the `backfill_states` table."""

    def __init__(self, tenant_id: str):
        self.tenant_id = tenant_id

    def load(self) -> Optional[BackfillProgress]:
        row = BackfillState.query.filter_by(tenant_id=self.tenant_id).first()
        if row is None:
            return None
        return BackfillProgress(
            entity_types=list(row.entity_types or []),
            entity_status=copy.deepcopy(row.entity_status or {}),
            status=row.status,
            records_processed=row.records_processed,
            entities_processed=row.entities_processed or 0,
            sub_entity_failures=row.sub_entity_failures or 0,
            current_entity=row.current_entity,
            started_at=_aware(row.started_at),
            finished_at=_aware(row.finished_at),
        )

    def save(self, progress: BackfillProgress) -> None:
        row = BackfillState.query.filter_by(tenant_id=self.tenant_id).first()
        if row is None:
            row = BackfillState(tenant_id=self.tenant_id)
            db.session.add(row)

        row.entity_types = list(progress.entity_types)
        # JSON columns only notice reassignment
        row.entity_status = copy.deepcopy(progress.entity_status)
        row.status = progress.status
        row.records_processed = progress.records_processed
        row.entities_processed = progress.entities_processed
        row.sub_entity_failures = progress.sub_entity_failures
        row.current_entity = progress.current_entity
        row.started_at = progress.started_at
        row.finished_at = progress.finished_at

        try:
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise


class SqlTenantStatusStore:
    """Error flags of one tenant, stored on its TenantAccount row.

    A missing account row turns every write into a no-op.
    """

    def __init__(self, tenant_id: str):
        self.tenant_id = tenant_id

    def _account(self) -> Optional[TenantAccount]:
        return TenantAccount.query.filter_by(tenant_id=self.tenant_id).first()

    def _commit(self) -> None:
        try:
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

    def get_token_error(self) -> Optional[str]:
        account = self._account()
        return account.token_error if account else None

    def set_token_error(self, message: str) -> None:
        account = self._account()
        if account is None or account.token_error == message:
            return
        account.token_error = message
        self._commit()

    def set_entity_error(self, entity_type: str, message: str) -> None:
        account = self._account()
        if account is None:
            return
        errors = dict(account.entity_errors or {})
        if errors.get(entity_type) == message:
            return
        errors[entity_type] = message
        account.entity_errors = errors
        self._commit()

    def clear_errors(self, entity_type: str) -> None:
        """Clear the error of one entity type together with the token error."""
        account = self._account()
        if account is None:
            return
        errors = dict(account.entity_errors or {})
        if entity_type not in errors and account.token_error is None:
            return
        errors.pop(entity_type, None)
        account.entity_errors = errors
        account.token_error = None
        self._commit()
