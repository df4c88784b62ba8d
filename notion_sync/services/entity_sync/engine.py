import hashlib
import json
from typing import Any, Dict, Mapping, Optional, Set, Tuple

from .coordinator import get_coordinator
from .errors import ConfigurationError, RecordNotFound, UpstreamAuthError
from .notion import NotionClient
from .registry import ENTITY_REGISTRY, get_definition
from .resolver import DependencyResolver
from .source import StripeSource
from .sub_entities import SubEntityProcessor
from .types import EntityDefinition, EntitySyncConfig, ProcessingResult, Record, processed_key


def hash_properties(properties: Dict[str, Any]) -> str:
    """Stable hash of Notion properties, used to skip writes of unchanged data."""
    encoded = json.dumps(properties, sort_keys=True, separators=(',', ':'), default=str)
    return hashlib.sha256(encoded.encode('utf-8')).hexdigest()


class EntitySyncEngine:
    """Synchronizes Stripe records of one tenant into Notion.

    Every record goes through the same pipeline: fetch, resolve relations,
    convert, then a coordinated upsert against its Notion database.

    Args:
        config: Tenant configuration
        source: StripeSource (or compatible) bound to the tenant
        destination: NotionClient (or compatible) authenticated for the tenant
        coordinator: EntityCoordinator of the tenant
        status: Tenant error flag store (optional)
        registry: Entity registry (default: ENTITY_REGISTRY)
    """

    def __init__(
        self,
        config: EntitySyncConfig,
        source: Any,
        destination: Any,
        coordinator: Any,
        status: Optional[Any] = None,
        registry: Optional[Mapping[str, EntityDefinition]] = None,
    ):
        self.config = config
        self.source = source
        self.destination = destination
        self.coordinator = coordinator
        self.status = status
        self.registry = ENTITY_REGISTRY if registry is None else registry

        self.resolver = DependencyResolver(coordinator, config.databases, self.registry, config.logger)
        self.resolver.processor = self
        self.sub_entities = SubEntityProcessor(self)

    @classmethod
    def from_config(cls, config: EntitySyncConfig, status: Optional[Any] = None) -> 'EntitySyncEngine':
        """Build an engine talking to the real Stripe and Notion APIs."""
        source = StripeSource(
            config.stripe_secret_key,
            stripe_account=config.tenant_id,
            api_version=config.stripe_api_version,
            logger=config.logger,
        )
        destination = NotionClient(
            config.notion_token,
            min_request_interval=config.notion_min_request_interval,
            max_retries=config.notion_max_retries,
            logger=config.logger,
        )
        coordinator = get_coordinator(config.tenant_id, logger=config.logger)
        return cls(config, source, destination, coordinator, status=status)

    def sync_entity(
        self,
        entity_type: str,
        source_id: str,
        force_update: bool = False,
        record: Optional[Record] = None,
        processed: Optional[Set[str]] = None,
        overrides: Optional[Dict[str, str]] = None,
    ) -> Optional[str]:
        """Write one record to Notion, resolving its relations first.

        Args:
            entity_type: Entity type of the record
            source_id: Stripe ID of the record
            force_update: Write even when the record is already mapped
            record: Already retrieved record, fetched from Stripe when None
            processed: Keys already handled during the current top-level call
            overrides: Relation page IDs supplied by the caller, win over resolved ones

        Returns:
            The Notion page ID, None when the entity type has no database
        """
        destination_id, _ = self._sync(entity_type, source_id, force_update, record, processed, overrides)
        return destination_id

    def _sync(
        self,
        entity_type: str,
        source_id: str,
        force_update: bool,
        record: Optional[Record],
        processed: Optional[Set[str]],
        overrides: Optional[Dict[str, str]],
    ) -> Tuple[Optional[str], Optional[Record]]:
        definition = get_definition(entity_type, self.registry)
        database_id = self.config.databases.get(entity_type)
        if not database_id:
            if self.config.logger:
                self.config.logger.info(f'No Notion database for {entity_type}, skipping {source_id}')
            return None, record

        processed = set() if processed is None else processed
        processed.add(processed_key(entity_type, source_id))
        overrides = overrides or {}

        try:
            if record is None:
                record = definition.fetch(self.source, source_id)

            resolved = self.resolver.resolve(entity_type, record, processed, skip=overrides.keys())
            ids = dict(resolved.ids)
            ids.update(overrides)

            properties = definition.convert(record, ids)

            mapping = self.coordinator.coordinated_upsert(
                entity_type,
                source_id,
                lambda: self.destination.upsert_page(database_id, definition.natural_key, source_id, properties),
                force_update=force_update,
                data_hash=hash_properties(properties),
            )
        except (ConfigurationError, RecordNotFound):
            raise
        except Exception as exc:
            self._record_failure(entity_type, exc)
            raise

        self._record_success(entity_type)

        if self.config.logger:
            self.config.logger.info(f'Synced {entity_type} {source_id} -> {mapping.destination_id}')

        return mapping.destination_id, record

    def process_entity(
        self,
        entity_type: str,
        source_id: str,
        record: Optional[Record] = None,
        force_update: bool = True,
        processed: Optional[Set[str]] = None,
    ) -> ProcessingResult:
        """Sync a top-level record and then the children embedded in it.

        Children failures are counted in the result and never raised.
        """
        processed = set() if processed is None else processed
        destination_id, record = self._sync(entity_type, source_id, force_update, record, processed, None)

        failures = 0
        if destination_id is not None and record is not None:
            failures = self.sub_entities.process(entity_type, record, destination_id, processed)

        return ProcessingResult(
            destination_id=destination_id,
            entities_processed=len(processed),
            sub_entity_failures=failures,
        )

    def process_discount_event(self, discount: Record) -> ProcessingResult:
        """Sync a discount delivered by a `customer.discount.*` event."""
        processed: Set[str] = set()
        destination_id = self.sync_entity(
            'discount',
            discount['id'],
            force_update=True,
            record=discount,
            processed=processed,
        )
        return ProcessingResult(destination_id=destination_id, entities_processed=len(processed))

    def process_event(self, event: Dict[str, Any]) -> Optional[ProcessingResult]:
        """Process a Stripe event.

        The payload is only used to find the record, the record itself is
        always retrieved again so redelivered or out of order events converge
        to the latest state.

        Args:
            event: Stripe event payload

        Returns:
            The processing result, None when the event carries nothing to sync
        """
        obj = event['data']['object']
        object_type = obj.get('object')

        if self.config.logger:
            self.config.logger.info(
                f"Received webhook {event['id']}: {event['type']} for {object_type} {obj.get('id')}"
            )

        if object_type == 'discount':
            return self.process_discount_event(obj)

        definition = self.registry.get(object_type)
        if definition is None or not definition.is_fetchable:
            if self.config.logger:
                self.config.logger.info(f"Ignoring {event['type']}: {object_type} is not synchronized")
            return None

        try:
            return self.process_entity(object_type, obj['id'])
        except RecordNotFound:
            if self.config.logger:
                self.config.logger.info(f"{object_type} {obj['id']} no longer exists, nothing to sync")
            return None

    def _record_success(self, entity_type: str) -> None:
        if self.status is not None:
            self.status.clear_errors(entity_type)

    def _record_failure(self, entity_type: str, error: Exception) -> None:
        if self.config.logger:
            self.config.logger.error(f'Failed to sync {entity_type}: {error}')
        if self.status is None:
            return

        if isinstance(error, UpstreamAuthError):
            self.status.set_token_error(str(error))
        elif not self.status.get_token_error():
            self.status.set_entity_error(entity_type, str(error))
