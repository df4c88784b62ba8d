from typing import Any, Dict, List, Optional

import stripe

from .errors import RecordNotFound
from .registry import get_definition
from .types import ListPage, Record


class StripeSource:
    """Reads records of one connected account from the Stripe API.

    Args:
        api_key: Platform secret key
        stripe_account: Connected account to act on (the tenant), None for the platform itself
        api_version: Stripe API version pinned on every request (optional)
        logger: Logger instance (optional)
    """

    def __init__(
        self,
        api_key: str,
        stripe_account: Optional[str] = None,
        api_version: Optional[str] = None,
        logger: Optional[Any] = None,
    ):
        self.api_key = api_key
        self.stripe_account = stripe_account
        self.api_version = api_version
        self.logger = logger
        stripe.set_app_info('Stripe Notion Sync')

    def _request_options(self) -> Dict[str, Any]:
        options: Dict[str, Any] = {'api_key': self.api_key}
        if self.stripe_account:
            options['stripe_account'] = self.stripe_account
        if self.api_version:
            options['stripe_version'] = self.api_version
        return options

    def _resource(self, entity_type: str):
        definition = get_definition(entity_type)
        return getattr(stripe, definition.resource)

    def retrieve(self, entity_type: str, source_id: str, expansions: Optional[List[str]] = None) -> Record:
        """Retrieve one record with its expansions.

        Raises:
            RecordNotFound: If the record does not exist or is a deleted customer
        """
        try:
            obj = self._resource(entity_type).retrieve(
                source_id,
                expand=list(expansions or []),
                **self._request_options(),
            )
        except stripe.InvalidRequestError as err:
            if err.code == 'resource_missing':
                raise RecordNotFound(entity_type, source_id) from err
            raise

        record = obj.to_dict()
        if record.get('deleted'):
            raise RecordNotFound(entity_type, source_id)
        return record

    def list(self, entity_type: str, limit: int = 1, starting_after: Optional[str] = None) -> ListPage:
        """List one page of records, newest first, after the `starting_after` cursor."""
        params: Dict[str, Any] = {'limit': limit}
        if starting_after:
            params['starting_after'] = starting_after

        page = self._resource(entity_type).list(**params, **self._request_options())

        if self.logger:
            self.logger.debug(
                f'Listed {len(page.data)} {entity_type} records after {starting_after} '
                f'(has_more={page.has_more})'
            )

        return ListPage(data=[obj.to_dict() for obj in page.data], has_more=bool(page.has_more))
