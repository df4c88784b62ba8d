import copy
import logging
import threading
from dataclasses import replace
from types import MappingProxyType

import pytest

from notion_sync import create_app
from notion_sync.extensions import db
from notion_sync.services.entity_sync.coordinator import get_coordinator, reset_coordinators
from notion_sync.services.entity_sync.engine import EntitySyncEngine
from notion_sync.services.entity_sync.errors import RecordNotFound
from notion_sync.services.entity_sync.registry import ENTITY_REGISTRY
from notion_sync.services.entity_sync.types import EntitySyncConfig, ListPage

TENANT_ID = "acct_test"

# One Notion database per entity type
ALL_DATABASES = {entity_type: f"db_{entity_type}" for entity_type in ENTITY_REGISTRY}


class FakeStripeSource:
    """In-memory stand-in for StripeSource."""

    def __init__(self):
        self.records = {}
        self.order = {}
        self.retrieve_calls = []
        self.list_calls = []

    def add(self, entity_type, record):
        self.records[(entity_type, record["id"])] = copy.deepcopy(record)
        self.order.setdefault(entity_type, []).append(record["id"])
        return record

    def retrieve(self, entity_type, source_id, expansions=None):
        self.retrieve_calls.append((entity_type, source_id))
        try:
            return copy.deepcopy(self.records[(entity_type, source_id)])
        except KeyError:
            raise RecordNotFound(entity_type, source_id) from None

    def list(self, entity_type, limit=1, starting_after=None):
        self.list_calls.append((entity_type, starting_after))
        ids = self.order.get(entity_type, [])
        start = ids.index(starting_after) + 1 if starting_after else 0
        chunk = ids[start:start + limit]
        return ListPage(
            data=[{"id": source_id, "object": entity_type} for source_id in chunk],
            has_more=start + limit < len(ids),
        )


class FakeNotion:
    """In-memory stand-in for NotionClient.upsert_page."""

    def __init__(self):
        self.pages = {}
        self.writes = []
        self.failures = {}
        self._lock = threading.Lock()

    def fail(self, natural_value, error):
        self.failures[natural_value] = error

    def upsert_page(self, database_id, natural_key, value, properties, merge=True):
        with self._lock:
            if value in self.failures:
                raise self.failures[value]

            self.writes.append((database_id, value))
            filtered = {k: v for k, v in properties.items() if v is not None}

            for page_id, page in self.pages.items():
                if page["database_id"] == database_id and page["natural_value"] == value:
                    page["properties"].update(filtered)
                    return page_id

            page_id = f"page-{len(self.pages) + 1}"
            self.pages[page_id] = {
                "database_id": database_id,
                "natural_value": value,
                "properties": filtered,
            }
            return page_id

    def page_for(self, value):
        for page_id, page in self.pages.items():
            if page["natural_value"] == value:
                return page_id, page
        return None, None


@pytest.fixture
def app(tmp_path):
    """Flask app on a throwaway SQLite file."""
    reset_coordinators()
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'test.db'}",
    })
    yield app
    reset_coordinators()
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def app_ctx(app):
    with app.app_context():
        yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def source():
    return FakeStripeSource()


@pytest.fixture
def notion():
    return FakeNotion()


@pytest.fixture
def make_engine(source, notion):
    """Build an engine for TENANT_ID wired to the fake Stripe and Notion."""

    def build(databases=None, status=None, tenant_id=TENANT_ID, registry=None, **config_overrides):
        config = EntitySyncConfig(
            tenant_id=tenant_id,
            stripe_secret_key="sk_test_fake",
            notion_token="secret_fake",
            databases=dict(ALL_DATABASES if databases is None else databases),
            logger=logging.getLogger("tests.entity_sync"),
            **config_overrides,
        )
        return EntitySyncEngine(config, source, notion, get_coordinator(tenant_id), status=status, registry=registry)

    return build


@pytest.fixture
def required_customer_registry():
    """Copy of ENTITY_REGISTRY where a charge can't be written without its customer."""
    charge = ENTITY_REGISTRY["charge"]
    dependencies = tuple(
        replace(dependency, required=True) if dependency.entity_type == "customer" else dependency
        for dependency in charge.dependencies
    )
    return MappingProxyType({**ENTITY_REGISTRY, "charge": replace(charge, dependencies=dependencies)})
