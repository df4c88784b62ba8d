"""Per-tenant coordination of Notion writes.

Each tenant has exactly one EntityCoordinator per process. It owns the
tenant's mapping cache and the table of in-flight upserts, so concurrent
webhook deliveries and backfill steps never write the same record twice.
"""

import threading
from concurrent.futures import Future
from datetime import UTC, datetime
from typing import Any, Callable, Dict, List, Optional

from .storage import SqlMappingStore
from .types import EntityMapping, mapping_key


class EntityCoordinator:
    """Serializes upserts per (entity type, source ID) for one tenant.

    Args:
        tenant_id: Tenant the coordinator belongs to
        store: Durable mapping store, read through on first access
        logger: Logger instance (optional)
    """

    def __init__(self, tenant_id: str, store: Any, logger: Optional[Any] = None):
        self.tenant_id = tenant_id
        self.store = store
        self.logger = logger
        self._lock = threading.Lock()
        self._mappings: Optional[Dict[str, EntityMapping]] = None
        self._in_flight: Dict[str, Future] = {}

    def _cache(self) -> Dict[str, EntityMapping]:
        # Caller holds self._lock
        if self._mappings is None:
            self._mappings = {mapping.key: mapping for mapping in self.store.load_all()}
        return self._mappings

    def get_mapping(self, entity_type: str, source_id: str) -> Optional[EntityMapping]:
        with self._lock:
            return self._cache().get(mapping_key(entity_type, source_id))

    def touch_mapping(self, entity_type: str, source_id: str) -> Optional[EntityMapping]:
        """Return the mapping with a refreshed updated_at, or None when unmapped."""
        with self._lock:
            mapping = self._cache().get(mapping_key(entity_type, source_id))
            return self._touch(mapping) if mapping is not None else None

    def list_mappings(self, prefix: str = '') -> List[EntityMapping]:
        """Mappings whose key starts with `prefix` (e.g. 'entity:customer:'), sorted by key."""
        with self._lock:
            mappings = [m for key, m in self._cache().items() if key.startswith(prefix)]
        return sorted(mappings, key=lambda m: m.key)

    def reset(self) -> int:
        """Delete every mapping of the tenant. Returns the number of deleted mappings."""
        with self._lock:
            deleted = self.store.delete_all()
            self._mappings = {}
        if self.logger:
            self.logger.warning(f'Deleted {deleted} mappings of tenant {self.tenant_id}')
        return deleted

    def coordinated_upsert(
        self,
        entity_type: str,
        source_id: str,
        operation: Callable[[], str],
        force_update: bool = False,
        data_hash: Optional[str] = None,
    ) -> EntityMapping:
        """Run `operation` unless the record is already mapped or being written.

        1. Another caller is writing the key: wait for it and share its outcome.
        2. The key is mapped and the write is not forced, or the data is unchanged:
           touch the mapping and return it without calling `operation`.
        3. Otherwise run `operation` and persist the mapping it produces.

        Args:
            entity_type: Entity type of the record
            source_id: Stripe ID of the record
            operation: Writes the record to Notion and returns the page ID
            force_update: Write even when a mapping already exists
            data_hash: Hash of the properties about to be written

        Returns:
            The committed mapping

        Raises:
            Exception: Whatever `operation` raised, for the owner and every waiter
        """
        key = mapping_key(entity_type, source_id)

        with self._lock:
            mappings = self._cache()
            future = self._in_flight.get(key)
            if future is not None:
                owner = False
            else:
                cached = mappings.get(key)
                unchanged = data_hash is not None and cached is not None and cached.data_hash == data_hash
                if cached is not None and (not force_update or unchanged):
                    return self._touch(cached)
                future = Future()
                self._in_flight[key] = future
                owner = True

        if not owner:
            if self.logger:
                self.logger.debug(f'Waiting for in-flight upsert of {key}')
            return future.result()

        try:
            destination_id = operation()
            with self._lock:
                mapping = self._commit(entity_type, source_id, destination_id, data_hash)
        except BaseException as exc:
            future.set_exception(exc)
            raise
        else:
            future.set_result(mapping)
            return mapping
        finally:
            with self._lock:
                self._in_flight.pop(key, None)

    def _touch(self, mapping: EntityMapping) -> EntityMapping:
        # Caller holds self._lock
        now = datetime.now(UTC)
        if now > mapping.updated_at:
            touched = EntityMapping(
                entity_type=mapping.entity_type,
                source_id=mapping.source_id,
                destination_id=mapping.destination_id,
                created_at=mapping.created_at,
                updated_at=now,
                data_hash=mapping.data_hash,
            )
            self.store.save(touched)
            self._mappings[touched.key] = touched
            return touched
        return mapping

    def _commit(self, entity_type: str, source_id: str, destination_id: str, data_hash: Optional[str]) -> EntityMapping:
        # Caller holds self._lock
        now = datetime.now(UTC)
        previous = self._mappings.get(mapping_key(entity_type, source_id))
        mapping = EntityMapping(
            entity_type=entity_type,
            source_id=source_id,
            destination_id=destination_id,
            created_at=previous.created_at if previous else now,
            updated_at=max(previous.updated_at, now) if previous else now,
            data_hash=data_hash,
        )
        self.store.save(mapping)
        self._mappings[mapping.key] = mapping
        return mapping


_coordinators: Dict[str, EntityCoordinator] = {}
_coordinators_lock = threading.Lock()


def get_coordinator(
    tenant_id: str,
    store_factory: Callable[[str], Any] = SqlMappingStore,
    logger: Optional[Any] = None,
) -> EntityCoordinator:
    """Return the coordinator of a tenant, creating it on first use."""
    with _coordinators_lock:
        coordinator = _coordinators.get(tenant_id)
        if coordinator is None:
            coordinator = EntityCoordinator(tenant_id, store_factory(tenant_id), logger)
            _coordinators[tenant_id] = coordinator
        return coordinator


def reset_coordinators() -> None:
    """Forget every coordinator. Mappings are reloaded from the store on next use."""
    with _coordinators_lock:
        _coordinators.clear()
