from typing import Optional, List, Dict, Any, Callable, Literal, Tuple, TypedDict
from dataclasses import dataclass, field
from datetime import datetime

from .errors import ConfigurationError


EntityType = Literal[
    'customer',
    'product',
    'coupon',
    'payment_intent',
    'price',
    'promotion_code',
    'charge',
    'invoice',
    'subscription',
    'subscription_item',
    'credit_note',
    'dispute',
    'invoiceitem',
    'discount',
    'line_item',
]

Record = Dict[str, Any]
Properties = Dict[str, Any]
ResolvedIds = Dict[str, Optional[str]]

BackfillStatus = Literal['pending', 'running', 'complete']


@dataclass(frozen=True)
class EntityDependency:
    """A relation from one entity type to another.

    Args:
        entity_type: The entity type this relation points at
        extract_id: Pulls the source ID of the related record out of an expanded record
        required: Whether the record can't be written without this relation
    """
    entity_type: str
    extract_id: Callable[[Record], Optional[str]]
    required: bool = False


@dataclass(frozen=True)
class EmbeddedEntity:
    """Child records that only exist inside a parent payload.

    Args:
        entity_type: Entity type of the children (e.g. 'line_item')
        extract: Returns the child records found in the parent record
    """
    entity_type: str
    extract: Callable[[Record], List[Record]]


@dataclass(frozen=True)
class EntityDefinition:
    """Static description of one synchronized entity type.

    Args:
        entity_type: Registry key
        natural_key: Title property of the Notion database, holds the Stripe ID
        convert: Builds Notion properties from a record and its resolved relations
        dependencies: Relations resolved before the record is written
        resource: Name of the stripe resource class, None if not retrievable by ID
        expansions: Stripe `expand` parameters needed by the extractors and converter
        is_listable: Whether the backfill lists this type from Stripe
        embedded: Children processed after the record itself commits
    """
    entity_type: str
    natural_key: str
    convert: Callable[[Record, ResolvedIds], Properties]
    dependencies: Tuple[EntityDependency, ...] = ()
    resource: Optional[str] = None
    expansions: Tuple[str, ...] = ()
    is_listable: bool = False
    embedded: Tuple[EmbeddedEntity, ...] = ()

    @property
    def is_fetchable(self) -> bool:
        return self.resource is not None

    def fetch(self, source: Any, source_id: str) -> Record:
        """Retrieve the expanded record from Stripe.

        Args:
            source: StripeSource bound to the tenant
            source_id: Stripe ID of the record

        Returns:
            The expanded record
        """
        if not self.is_fetchable:
            raise ConfigurationError(
                f'{self.entity_type} records are embedded in their parent and cannot be retrieved by ID'
            )
        return source.retrieve(self.entity_type, source_id, list(self.expansions))


@dataclass
class EntityMapping:
    """Translation of a Stripe ID into a Notion page ID."""
    entity_type: str
    source_id: str
    destination_id: str
    created_at: datetime
    updated_at: datetime
    data_hash: Optional[str] = None

    @property
    def key(self) -> str:
        return mapping_key(self.entity_type, self.source_id)


@dataclass
class ResolvedDependencySet:
    """Destination IDs of a record's relations plus whatever failed on the way."""
    ids: ResolvedIds = field(default_factory=dict)
    errors: List[Tuple[str, Exception]] = field(default_factory=list)


@dataclass
class ProcessingResult:
    """Result of processing one top-level entity."""
    destination_id: Optional[str]
    entities_processed: int
    sub_entity_failures: int = 0


@dataclass
class ListPage:
    """One page of a Stripe list call."""
    data: List[Record]
    has_more: bool


@dataclass
class EntitySyncConfig:
    """Configuration for EntitySyncEngine.

    Args:
        tenant_id: Connected Stripe account the engine works for
        stripe_secret_key: Platform secret key used to call Stripe on behalf of the tenant
        notion_token: Notion integration token of the tenant
        databases: Notion database ID per entity type, types without one are skipped
        stripe_api_version: Stripe API version (optional)
        notion_min_request_interval: Minimum spacing between Notion requests, in seconds
        notion_max_retries: Attempts per Notion request before giving up
        backfill_page_size: Records listed per backfill step
        logger: Logger instance (optional)
    """
    tenant_id: str
    stripe_secret_key: str
    notion_token: str
    databases: Dict[str, str] = field(default_factory=dict)
    stripe_api_version: Optional[str] = None
    notion_min_request_interval: float = 0.34
    notion_max_retries: int = 5
    backfill_page_size: int = 1
    logger: Optional[Any] = None


class BackfillCursor(TypedDict):
    """Progress of the backfill for one entity type."""
    started: bool
    completed: bool
    cursor: Optional[str]


def mapping_key(entity_type: str, source_id: str) -> str:
    """Storage key of a mapping, e.g. 'entity:customer:cus_123'."""
    return f'entity:{entity_type}:{source_id}'


def processed_key(entity_type: str, source_id: str) -> str:
    return f'{entity_type}:{source_id}'


@dataclass
class BackfillProgress:
    """Persisted state of a tenant's backfill.

    Args:
        entity_types: Entity types to backfill, in processing order
        entity_status: Cursor per entity type
        status: pending, running or complete
        records_processed: Records processed across all types
        entities_processed: Entities handled while processing those records, dependencies
            and sub-entities included
        sub_entity_failures: Sub-entities that could not be written
        current_entity: Entity type the last step worked on
        started_at: When the backfill was started
        finished_at: When the last entity type completed
    """
    entity_types: List[str]
    entity_status: Dict[str, BackfillCursor]
    status: str = 'pending'
    records_processed: int = 0
    entities_processed: int = 0
    sub_entity_failures: int = 0
    current_entity: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    def next_entity_type(self) -> Optional[str]:
        for entity_type in self.entity_types:
            if not self.entity_status[entity_type]['completed']:
                return entity_type
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'status': self.status,
            'records_processed': self.records_processed,
            'entities_processed': self.entities_processed,
            'sub_entity_failures': self.sub_entity_failures,
            'current_entity': self.current_entity,
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'finished_at': self.finished_at.isoformat() if self.finished_at else None,
            'entity_status': {t: dict(self.entity_status[t]) for t in self.entity_types},
        }
