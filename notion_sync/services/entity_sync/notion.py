"""Minimal Notion API client used to write synchronized records."""

import threading
import time
from typing import Any, Callable, Dict, Optional

import requests

from .errors import DestinationError, DestinationWriteError, TransientNetworkError, UpstreamAuthError
from .types import Properties

NOTION_API_URL = 'https://api.notion.com/v1'
NOTION_VERSION = '2022-06-28'

# Client and validation errors, retrying them cannot succeed
NON_RETRYABLE_CODES = frozenset({
    'invalid_json',
    'invalid_request_url',
    'invalid_request',
    'invalid_grant',
    'validation_error',
    'missing_version',
    'unauthorized',
    'restricted_resource',
    'object_not_found',
})
NON_RETRYABLE_STATUSES = frozenset({400, 401, 403, 404})
AUTH_ERROR_CODES = frozenset({'unauthorized', 'invalid_grant'})


class NotionClient:
    """Rate limited Notion client.

    Requests are spaced at least `min_request_interval` seconds apart. Rate
    limits, server errors and network failures are retried with exponential
    backoff, client errors fail immediately.

    Args:
        token: Notion integration token
        min_request_interval: Minimum spacing between two requests, in seconds
        max_retries: Attempts per request
        timeout: Timeout of a single HTTP request, in seconds
        session: requests session to use (optional)
        logger: Logger instance (optional)
        sleep: Sleep function, replaced in tests
    """

    def __init__(
        self,
        token: str,
        min_request_interval: float = 0.34,
        max_retries: int = 5,
        timeout: float = 30,
        session: Optional[requests.Session] = None,
        logger: Optional[Any] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.min_request_interval = min_request_interval
        self.max_retries = max(1, max_retries)
        self.timeout = timeout
        self.logger = logger
        self._sleep = sleep
        self._throttle_lock = threading.Lock()
        self._last_request_at = 0.0

        self.session = session or requests.Session()
        self.session.headers.update({
            'Authorization': f'Bearer {token}',
            'Notion-Version': NOTION_VERSION,
            'Content-Type': 'application/json',
        })

    def _throttle(self) -> None:
        with self._throttle_lock:
            wait = self._last_request_at + self.min_request_interval - time.monotonic()
            if wait > 0:
                self._sleep(wait)
            self._last_request_at = time.monotonic()

    def request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Send a request, retrying transient failures.

        Raises:
            UpstreamAuthError: The token was rejected
            DestinationWriteError: Client error, or rate limit / server error after all retries
            TransientNetworkError: Network failure after all retries
        """
        last_error: Optional[DestinationError] = None

        for attempt in range(self.max_retries):
            self._throttle()
            retry_after = 0.0
            try:
                response = self.session.request(
                    method,
                    f'{NOTION_API_URL}/{path}',
                    json=payload,
                    timeout=self.timeout,
                )
            except requests.RequestException as exc:
                last_error = TransientNetworkError(f'Notion request failed: {exc}')
            else:
                if response.ok:
                    return response.json()

                last_error = self._error_from_response(response)
                if not self._is_retryable(last_error):
                    raise last_error
                retry_after = _retry_after_seconds(response)

            if attempt < self.max_retries - 1:
                delay = max(2 ** attempt, retry_after)
                if self.logger:
                    self.logger.warning(
                        f'Notion {method} {path} failed ({last_error}), retry {attempt + 1} in {delay}s'
                    )
                self._sleep(delay)

        raise last_error

    def _error_from_response(self, response: requests.Response) -> DestinationError:
        try:
            body = response.json()
        except ValueError:
            body = {}
        code = body.get('code') if isinstance(body, dict) else None
        message = (body.get('message') if isinstance(body, dict) else None) or response.text or response.reason
        message = f'Notion API error {response.status_code}: {message}'

        if response.status_code == 401 or code in AUTH_ERROR_CODES:
            return UpstreamAuthError(message, status=response.status_code, code=code)
        return DestinationWriteError(message, status=response.status_code, code=code)

    @staticmethod
    def _is_retryable(error: DestinationError) -> bool:
        if error.code in NON_RETRYABLE_CODES or error.status in NON_RETRYABLE_STATUSES:
            return False
        return error.status is None or error.status in (409, 429) or error.status >= 500

    def find_by_natural_key(self, database_id: str, property_name: str, value: str) -> Optional[Dict[str, Any]]:
        """Return the first page of the database whose title property equals `value`."""
        result = self.request('POST', f'databases/{database_id}/query', {
            'filter': {'property': property_name, 'title': {'equals': value}},
            'page_size': 1,
        })
        results = result.get('results') or []
        return results[0] if results else None

    def create_page(self, database_id: str, properties: Properties) -> Dict[str, Any]:
        return self.request('POST', 'pages', {
            'parent': {'database_id': database_id},
            'properties': _without_empty(properties),
        })

    def update_page(self, page_id: str, properties: Properties) -> Dict[str, Any]:
        return self.request('PATCH', f'pages/{page_id}', {'properties': properties})

    def upsert_page(
        self,
        database_id: str,
        natural_key: str,
        value: str,
        properties: Properties,
        merge: bool = True,
    ) -> str:
        """Create the page identified by its natural key, or update it in place.

        Args:
            database_id: Notion database of the entity type
            natural_key: Title property holding the Stripe ID
            value: The Stripe ID
            properties: Page properties, None for unknown relations
            merge: Leave properties that are None untouched instead of clearing them

        Returns:
            The Notion page ID
        """
        existing = self.find_by_natural_key(database_id, natural_key, value)
        if existing is None:
            page = self.create_page(database_id, properties)
            if self.logger:
                self.logger.info(f'Created Notion page {page["id"]} for {value}')
            return page['id']

        if merge:
            payload = _without_empty(properties)
        else:
            # None only comes from relation builders
            payload = {name: prop if prop is not None else {'relation': []} for name, prop in properties.items()}
        self.update_page(existing['id'], payload)
        return existing['id']


def _without_empty(properties: Properties) -> Properties:
    return {name: prop for name, prop in properties.items() if prop is not None}


def _retry_after_seconds(response: requests.Response) -> float:
    try:
        return float(response.headers.get('Retry-After', 0))
    except (TypeError, ValueError):
        return 0.0
