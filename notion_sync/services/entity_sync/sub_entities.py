from typing import Any, Set

from .registry import get_definition
from .types import Record


class SubEntityProcessor:
    """Writes the children embedded in a parent record once the parent is committed.

    Line items, subscription items and attached discounts can't be retrieved
    on their own, so they are taken from the parent payload and linked to the
    parent's freshly written page.
    """

    def __init__(self, engine: Any):
        self.engine = engine

    def process(self, entity_type: str, record: Record, destination_id: str, processed: Set[str]) -> int:
        """Process every embedded child of a committed parent.

        Args:
            entity_type: Type of the parent
            record: Expanded parent record
            destination_id: Notion page ID of the parent
            processed: Keys already handled during the current top-level call

        Returns:
            Number of children that failed
        """
        definition = get_definition(entity_type, self.engine.registry)
        logger = self.engine.config.logger
        failures = 0

        for embedded in definition.embedded:
            if not self.engine.config.databases.get(embedded.entity_type):
                continue

            for child in embedded.extract(record):
                child_id = child.get('id')
                if not child_id:
                    continue
                try:
                    self.engine.sync_entity(
                        embedded.entity_type,
                        child_id,
                        force_update=True,
                        record=child,
                        processed=processed,
                        overrides={entity_type: destination_id},
                    )
                except Exception as exc:
                    failures += 1
                    if logger:
                        logger.error(
                            f'Failed to sync {embedded.entity_type} {child_id} of {entity_type} '
                            f'{record.get("id")}: {exc}'
                        )

        return failures
