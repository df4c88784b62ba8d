from datetime import UTC, datetime

from .extensions import db


class Settings(db.Model):
    """Global key/value configuration, overridable by environment variables."""

    __tablename__ = "settings"
    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String, unique=True, nullable=False)
    value = db.Column(db.String, nullable=True)


class TenantAccount(db.Model):
    """A connected Stripe account and the Notion workspace it syncs into."""

    __tablename__ = "tenant_accounts"
    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String, unique=True, nullable=False)  # Stripe account ID (acct_...)
    notion_token = db.Column(db.String, nullable=True)
    databases = db.Column(db.JSON, nullable=False, default=dict)  # entity type -> Notion database ID
    entity_errors = db.Column(db.JSON, nullable=False, default=dict)  # entity type -> last error
    token_error = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(UTC), nullable=False)
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self):
        return f"<TenantAccount {self.tenant_id}>"


class EntityMappingRow(db.Model):
    """Stripe ID to Notion page ID translation of one tenant."""

    __tablename__ = "entity_mappings"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "entity_type", "source_id", name="uq_entity_mapping"),
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String, nullable=False, index=True)
    entity_type = db.Column(db.String, nullable=False)
    source_id = db.Column(db.String, nullable=False)
    destination_id = db.Column(db.String, nullable=False)
    data_hash = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False)
    updated_at = db.Column(db.DateTime, nullable=False)

    @property
    def key(self) -> str:
        return f"entity:{self.entity_type}:{self.source_id}"

    def __repr__(self):
        return f"<EntityMappingRow {self.tenant_id} {self.key} -> {self.destination_id}>"


class BackfillState(db.Model):
    """Resumable backfill progress, one row per tenant."""

    __tablename__ = "backfill_states"
    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String, unique=True, nullable=False)
    status = db.Column(db.String, nullable=False, default="pending")  # pending, running, complete
    records_processed = db.Column(db.Integer, nullable=False, default=0)
    entities_processed = db.Column(db.Integer, nullable=False, default=0)
    sub_entity_failures = db.Column(db.Integer, nullable=False, default=0)
    current_entity = db.Column(db.String, nullable=True)
    entity_types = db.Column(db.JSON, nullable=False, default=list)
    entity_status = db.Column(db.JSON, nullable=False, default=dict)
    started_at = db.Column(db.DateTime, nullable=True)
    finished_at = db.Column(db.DateTime, nullable=True)
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )
