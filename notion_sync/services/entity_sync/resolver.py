from typing import Any, Collection, Dict, List, Mapping, Optional, Set, Tuple

from .errors import ConfigurationError, CycleDetected, MissingRequiredDependency
from .registry import ENTITY_REGISTRY, get_definition
from .types import EntityDefinition, Record, ResolvedDependencySet, processed_key

_VISITING = 'visiting'
_VISITED = 'visited'


def topological_sort(start: str, registry: Optional[Mapping[str, EntityDefinition]] = None) -> List[str]:
    """Order the dependency closure of an entity type.

    Dependencies come strictly before their dependents, siblings follow
    registry declaration order and the start type comes last.

    Args:
        start: Entity type to sort from
        registry: Registry to walk (default: ENTITY_REGISTRY)

    Returns:
        Entity types, each one exactly once

    Raises:
        CycleDetected: If a dependency path leads back to a type being visited
    """
    registry = ENTITY_REGISTRY if registry is None else registry
    marks: Dict[str, str] = {}
    path: List[str] = []
    order: List[str] = []

    def visit(entity_type: str) -> None:
        mark = marks.get(entity_type)
        if mark == _VISITED:
            return
        if mark == _VISITING:
            raise CycleDetected(path[path.index(entity_type):] + [entity_type])

        marks[entity_type] = _VISITING
        path.append(entity_type)
        for dependency in get_definition(entity_type, registry).dependencies:
            visit(dependency.entity_type)
        path.pop()
        marks[entity_type] = _VISITED
        order.append(entity_type)

    visit(start)
    return order


def build_dependency_plan(entity_type: str, registry: Optional[Mapping[str, EntityDefinition]] = None) -> List[str]:
    """Every type that must exist before `entity_type` can be written, in write order."""
    return topological_sort(entity_type, registry)[:-1]


def extract_dependency_ids(
    entity_type: str,
    record: Record,
    registry: Optional[Mapping[str, EntityDefinition]] = None,
) -> Dict[str, Optional[str]]:
    """Source IDs of the declared dependencies of a record, without side effects."""
    definition = get_definition(entity_type, registry)
    return {dependency.entity_type: dependency.extract_id(record) for dependency in definition.dependencies}


def build_record_plan(
    entity_type: str,
    record: Record,
    registry: Optional[Mapping[str, EntityDefinition]] = None,
) -> List[Tuple[str, str]]:
    """Dependencies actually referenced by a record, in topological order.

    Returns:
        (entity_type, source_id) pairs, absent references left out
    """
    ids = extract_dependency_ids(entity_type, record, registry)
    plan = build_dependency_plan(entity_type, registry)
    return [(dependency_type, ids[dependency_type]) for dependency_type in plan if ids.get(dependency_type)]


class DependencyResolver:
    """Resolves the relations of a record into Notion page IDs.

    Cache misses are processed recursively through `processor`, which is wired
    after construction because the processor itself owns a resolver.

    Args:
        coordinator: EntityCoordinator of the tenant
        databases: Notion database ID per entity type
        registry: Entity registry (default: ENTITY_REGISTRY)
        logger: Logger instance (optional)
    """

    def __init__(
        self,
        coordinator: Any,
        databases: Dict[str, str],
        registry: Optional[Mapping[str, EntityDefinition]] = None,
        logger: Optional[Any] = None,
    ):
        self.coordinator = coordinator
        self.databases = databases
        self.registry = ENTITY_REGISTRY if registry is None else registry
        self.logger = logger
        self.processor: Optional[Any] = None

    def resolve(
        self,
        entity_type: str,
        record: Record,
        processed: Set[str],
        skip: Collection[str] = (),
    ) -> ResolvedDependencySet:
        """Resolve every declared dependency of a record.

        Args:
            entity_type: Type of the record
            record: Expanded record
            processed: Keys already handled during the current top-level call
            skip: Dependency types supplied by the caller, left unresolved

        Returns:
            Destination IDs per dependency type, None when absent or failed

        Raises:
            MissingRequiredDependency: If a required dependency is absent from the record
                or cannot be resolved into a page
        """
        definition = get_definition(entity_type, self.registry)
        resolved = ResolvedDependencySet()

        for dependency in definition.dependencies:
            dependency_type = dependency.entity_type
            if dependency_type in skip:
                continue

            source_id = dependency.extract_id(record)
            if not source_id:
                if dependency.required:
                    raise MissingRequiredDependency(entity_type, dependency_type, record.get('id'))
                resolved.ids[dependency_type] = None
                continue

            try:
                destination_id = self._resolve_one(dependency_type, source_id, processed)
            except ConfigurationError:
                raise
            except Exception as exc:
                if dependency.required:
                    raise MissingRequiredDependency(entity_type, dependency_type, record.get('id')) from exc
                resolved.ids[dependency_type] = None
                resolved.errors.append((dependency_type, exc))
                if self.logger:
                    self.logger.warning(
                        f'Could not resolve {dependency_type} {source_id} for {entity_type} '
                        f'{record.get("id")}: {exc}'
                    )
                continue

            if destination_id is None and dependency.required:
                raise MissingRequiredDependency(entity_type, dependency_type, record.get('id'))
            resolved.ids[dependency_type] = destination_id

        return resolved

    def _resolve_one(self, entity_type: str, source_id: str, processed: Set[str]) -> Optional[str]:
        if not self.databases.get(entity_type):
            return None

        mapping = self.coordinator.touch_mapping(entity_type, source_id)
        if mapping is not None:
            return mapping.destination_id

        # Already attempted in this call and still unmapped, so it failed
        if processed_key(entity_type, source_id) in processed:
            return None

        if self.processor is None:
            raise ConfigurationError('DependencyResolver has no processor wired')
        return self.processor.sync_entity(entity_type, source_id, processed=processed)
