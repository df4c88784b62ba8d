"""Error taxonomy of the entity sync engine."""

from typing import Optional


class SyncError(Exception):
    """Base class for every error raised by the sync engine."""


class ConfigurationError(SyncError):
    """The registry or the tenant setup is broken. Never expected in a correct build."""


class UnknownEntityType(ConfigurationError):
    def __init__(self, entity_type: str):
        super().__init__(f'Unknown entity type: {entity_type}')
        self.entity_type = entity_type


class CycleDetected(ConfigurationError):
    def __init__(self, path):
        self.path = list(path)
        super().__init__(f'Dependency cycle detected: {" -> ".join(self.path)}')


class DependencyResolutionError(SyncError):
    """A dependency of the record being processed could not be resolved."""


class MissingRequiredDependency(DependencyResolutionError):
    def __init__(self, entity_type: str, dependency_type: str, source_id: Optional[str] = None):
        subject = f'{entity_type} {source_id}' if source_id else entity_type
        super().__init__(f'{subject} is missing required dependency {dependency_type}')
        self.entity_type = entity_type
        self.dependency_type = dependency_type
        self.source_id = source_id


class RecordNotFound(SyncError):
    """The source record does not exist (or was deleted)."""

    def __init__(self, entity_type: str, source_id: str):
        super().__init__(f'{entity_type} {source_id} not found in Stripe')
        self.entity_type = entity_type
        self.source_id = source_id


class DestinationError(SyncError):
    """Notion rejected a request.

    Args:
        message: Human readable message, taken from the Notion error body when present
        status: HTTP status code, None for network failures
        code: Notion error code (e.g. 'validation_error')
    """

    def __init__(self, message: str, status: Optional[int] = None, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.code = code


class UpstreamAuthError(DestinationError):
    """The Notion token of the tenant is invalid or was revoked."""


class DestinationWriteError(DestinationError):
    """Validation failure or rate limit still exceeded after all retries."""


class TransientNetworkError(DestinationError):
    """Network failure that outlived the retry budget."""
