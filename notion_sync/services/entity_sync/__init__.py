"""Entity sync engine for Stripe to Notion.

Replicates Stripe records into Notion databases while keeping the relations
between them, driven by webhook events and a resumable backfill.
"""

from .backfill import BackfillDriver
from .coordinator import EntityCoordinator, get_coordinator, reset_coordinators
from .engine import EntitySyncEngine, hash_properties
from .errors import (
    ConfigurationError,
    CycleDetected,
    DependencyResolutionError,
    DestinationError,
    DestinationWriteError,
    MissingRequiredDependency,
    RecordNotFound,
    SyncError,
    TransientNetworkError,
    UnknownEntityType,
    UpstreamAuthError,
)
from .notion import NotionClient
from .registry import (
    BACKFILL_ENTITY_TYPES,
    ENTITY_REGISTRY,
    get_definition,
    get_listable_entities,
    validate_backfill_entities_complete,
    validate_registry,
)
from .resolver import DependencyResolver, build_dependency_plan, build_record_plan, topological_sort
from .source import StripeSource
from .storage import MemoryMappingStore, SqlBackfillStore, SqlMappingStore, SqlTenantStatusStore
from .types import (
    BackfillProgress,
    EntityDefinition,
    EntityDependency,
    EntityMapping,
    EntitySyncConfig,
    ProcessingResult,
)

__all__ = [
    'BACKFILL_ENTITY_TYPES',
    'BackfillDriver',
    'BackfillProgress',
    'ConfigurationError',
    'CycleDetected',
    'DependencyResolutionError',
    'DependencyResolver',
    'DestinationError',
    'DestinationWriteError',
    'ENTITY_REGISTRY',
    'EntityCoordinator',
    'EntityDefinition',
    'EntityDependency',
    'EntityMapping',
    'EntitySyncConfig',
    'EntitySyncEngine',
    'MemoryMappingStore',
    'MissingRequiredDependency',
    'NotionClient',
    'ProcessingResult',
    'RecordNotFound',
    'SqlBackfillStore',
    'SqlMappingStore',
    'SqlTenantStatusStore',
    'StripeSource',
    'SyncError',
    'TransientNetworkError',
    'UnknownEntityType',
    'UpstreamAuthError',
    'build_dependency_plan',
    'build_record_plan',
    'get_coordinator',
    'get_definition',
    'get_listable_entities',
    'hash_properties',
    'reset_coordinators',
    'topological_sort',
    'validate_backfill_entities_complete',
    'validate_registry',
]
