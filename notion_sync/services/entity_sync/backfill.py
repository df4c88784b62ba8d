"""Resumable historical sync of every listable entity type."""

from datetime import UTC, datetime
from typing import Any, Iterable, Mapping, Optional

from .errors import ConfigurationError, MissingRequiredDependency, RecordNotFound
from .registry import ENTITY_REGISTRY, get_definition, get_listable_entities, validate_backfill_entities_complete
from .resolver import build_record_plan
from .types import BackfillCursor, BackfillProgress, EntityDefinition, ProcessingResult, Record


class BackfillDriver:
    """Walks every listable entity type page by page.

    Each call to `step` is one independently retryable unit of work. Progress
    is persisted after every record, so a step that dies half way resumes
    after the last record it committed.

    Args:
        engine: EntitySyncEngine of the tenant
        store: Backfill progress store of the tenant
        page_size: Records listed per step (default: engine config)
        registry: Entity registry (default: ENTITY_REGISTRY)
    """

    def __init__(
        self,
        engine: Any,
        store: Any,
        page_size: Optional[int] = None,
        registry: Optional[Mapping[str, EntityDefinition]] = None,
    ):
        self.engine = engine
        self.store = store
        self.page_size = page_size or engine.config.backfill_page_size
        self.registry = ENTITY_REGISTRY if registry is None else registry
        self.logger = engine.config.logger

    def start(self, entity_types: Optional[Iterable[str]] = None, restart: bool = False) -> BackfillProgress:
        """Create the backfill state, or return the one already in progress.

        Args:
            entity_types: Listable types in processing order (default: declaration order)
            restart: Discard any existing progress

        Raises:
            ConfigurationError: If `entity_types` does not cover every listable type
        """
        entity_types = list(entity_types or get_listable_entities(self.registry))
        validate_backfill_entities_complete(entity_types, self.registry)

        existing = self.store.load()
        if existing is not None and existing.status != 'complete' and not restart:
            return existing

        progress = BackfillProgress(
            entity_types=entity_types,
            entity_status={
                entity_type: BackfillCursor(started=False, completed=False, cursor=None)
                for entity_type in entity_types
            },
            status='pending',
            started_at=datetime.now(UTC),
        )
        self.store.save(progress)

        if self.logger:
            self.logger.info(f'Backfill started for {", ".join(entity_types)}')
        return progress

    def status(self) -> Optional[BackfillProgress]:
        return self.store.load()

    def step(self) -> bool:
        """Process one page of the next incomplete entity type.

        Returns:
            True while work remains

        Raises:
            ConfigurationError: If the backfill was never started
        """
        progress = self.store.load()
        if progress is None:
            raise ConfigurationError('Backfill has not been started')
        if progress.status == 'complete':
            return False

        entity_type = progress.next_entity_type()
        if entity_type is None:
            self._complete(progress)
            return False

        cursor = progress.entity_status[entity_type]
        progress.status = 'running'
        progress.current_entity = entity_type
        cursor['started'] = True

        page = self.engine.source.list(entity_type, limit=self.page_size, starting_after=cursor['cursor'])

        for listed in page.data:
            result = self._process_record(entity_type, listed)
            cursor['cursor'] = listed['id']
            progress.records_processed += 1
            if result is not None:
                progress.entities_processed += result.entities_processed
                progress.sub_entity_failures += result.sub_entity_failures
            self.store.save(progress)

        if not page.has_more:
            cursor['completed'] = True
            if self.logger:
                self.logger.info(f'Backfill of {entity_type} completed')

        if progress.next_entity_type() is None:
            self._complete(progress)
            return False

        self.store.save(progress)
        return True

    def run(self, max_steps: Optional[int] = None) -> BackfillProgress:
        """Run steps until the backfill completes or `max_steps` is reached."""
        steps = 0
        while max_steps is None or steps < max_steps:
            steps += 1
            if not self.step():
                break
        return self.store.load()

    def _process_record(self, entity_type: str, listed: Record) -> Optional[ProcessingResult]:
        """Sync one listed record after its referenced dependencies.

        Returns:
            The processing result, None when the record was skipped
        """
        definition = get_definition(entity_type, self.registry)
        try:
            record = definition.fetch(self.engine.source, listed['id'])
        except RecordNotFound:
            if self.logger:
                self.logger.info(f'{entity_type} {listed["id"]} disappeared before it was synced')
            return None

        processed = set()
        for dependency_type, dependency_id in build_record_plan(entity_type, record, self.registry):
            try:
                self.engine.sync_entity(dependency_type, dependency_id, processed=processed)
            except ConfigurationError:
                raise
            except Exception as exc:
                if self.logger:
                    self.logger.warning(
                        f'Backfill could not sync {dependency_type} {dependency_id} '
                        f'for {entity_type} {record["id"]}: {exc}'
                    )

        try:
            result = self.engine.process_entity(entity_type, record['id'], record=record, processed=processed)
        except MissingRequiredDependency as exc:
            # Fails the same way on every retry, so the cursor moves past it
            if self.logger:
                self.logger.warning(f'Backfill skipped {entity_type} {record["id"]}: {exc}')
            return None

        if result.sub_entity_failures and self.logger:
            self.logger.warning(
                f'{result.sub_entity_failures} sub-entities of {entity_type} {record["id"]} failed to sync'
            )
        return result

    def _complete(self, progress: BackfillProgress) -> None:
        progress.status = 'complete'
        progress.current_entity = None
        progress.finished_at = datetime.now(UTC)
        self.store.save(progress)
        if self.logger:
            self.logger.info(
                f'Backfill complete, {progress.records_processed} records and '
                f'{progress.entities_processed} entities processed'
            )
