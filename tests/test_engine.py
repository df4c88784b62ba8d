"""Tests for EntitySyncEngine: dependency resolution, idempotent writes and error flags."""

from datetime import UTC, datetime

import pytest

from notion_sync.services.account_service import AccountService
from notion_sync.services.entity_sync.coordinator import get_coordinator, reset_coordinators
from notion_sync.services.entity_sync.engine import hash_properties
from notion_sync.services.entity_sync.errors import (
    DestinationWriteError,
    MissingRequiredDependency,
    RecordNotFound,
    UnknownEntityType,
    UpstreamAuthError,
)
from notion_sync.services.entity_sync.storage import MemoryMappingStore, SqlTenantStatusStore
from notion_sync.services.entity_sync.types import EntityMapping

TENANT_ID = "acct_test"

PAYMENT_DATABASES = {
    "customer": "db_customer",
    "payment_intent": "db_payment_intent",
    "charge": "db_charge",
}


def _seed_charge(source):
    source.add("customer", {"id": "cu_1", "object": "customer", "name": "Ada", "email": "ada@example.com"})
    source.add("charge", {
        "id": "ch_1",
        "object": "charge",
        "customer": "cu_1",
        "payment_intent": None,
        "amount": 1500,
        "currency": "usd",
        "status": "succeeded",
    })


class TestSyncEntity:
    """Test single record synchronization."""

    def test_dependency_is_written_first(self, app_ctx, source, notion, make_engine):
        """Syncing a charge writes its customer first and links the charge to it."""
        _seed_charge(source)
        engine = make_engine(PAYMENT_DATABASES)

        charge_page = engine.sync_entity("charge", "ch_1")

        assert notion.writes == [("db_customer", "cu_1"), ("db_charge", "ch_1")]
        customer_page, _ = notion.page_for("cu_1")
        assert notion.pages[charge_page]["properties"]["Customer"] == {"relation": [{"id": customer_page}]}
        assert "Payment Intent" not in notion.pages[charge_page]["properties"]

        coordinator = get_coordinator(TENANT_ID)
        assert coordinator.get_mapping("customer", "cu_1").destination_id == customer_page
        assert coordinator.get_mapping("charge", "ch_1").destination_id == charge_page

    def test_second_sync_does_not_write(self, app_ctx, source, notion, make_engine):
        """An already mapped record is not written again."""
        _seed_charge(source)
        engine = make_engine(PAYMENT_DATABASES)

        first = engine.sync_entity("charge", "ch_1")
        second = engine.sync_entity("charge", "ch_1")

        assert first == second
        assert len(notion.writes) == 2

    def test_mappings_survive_restart(self, app_ctx, source, notion, make_engine):
        """A fresh coordinator reloads mappings from the database instead of rewriting."""
        _seed_charge(source)
        make_engine(PAYMENT_DATABASES).sync_entity("charge", "ch_1")

        reset_coordinators()
        make_engine(PAYMENT_DATABASES).sync_entity("charge", "ch_1")

        assert len(notion.writes) == 2

    def test_type_without_database_is_skipped(self, app_ctx, source, notion, make_engine):
        """Nothing is fetched or written for an entity type without a database."""
        _seed_charge(source)
        engine = make_engine({"charge": "db_charge"})

        assert engine.sync_entity("customer", "cu_1") is None
        assert source.retrieve_calls == []

        engine.sync_entity("charge", "ch_1")
        assert notion.writes == [("db_charge", "ch_1")]
        _, charge = notion.page_for("ch_1")
        assert "Customer" not in charge["properties"]

    def test_failed_dependency_is_isolated(self, app_ctx, source, notion, make_engine):
        """A dependency that cannot be written leaves the relation empty, the record is still written."""
        _seed_charge(source)
        notion.fail("cu_1", DestinationWriteError("Notion API error 400: bad", status=400, code="validation_error"))
        engine = make_engine(PAYMENT_DATABASES)

        charge_page = engine.sync_entity("charge", "ch_1")

        assert charge_page is not None
        assert "Customer" not in notion.pages[charge_page]["properties"]
        assert get_coordinator(TENANT_ID).get_mapping("customer", "cu_1") is None

    def test_missing_dependency_record_is_isolated(self, app_ctx, source, notion, make_engine):
        """A dependency deleted from Stripe does not block its dependent."""
        source.add("charge", {"id": "ch_2", "object": "charge", "customer": "cu_gone"})
        engine = make_engine(PAYMENT_DATABASES)

        assert engine.sync_entity("charge", "ch_2") is not None
        assert notion.writes == [("db_charge", "ch_2")]

    def test_missing_record_raises(self, app_ctx, make_engine):
        engine = make_engine(PAYMENT_DATABASES)
        with pytest.raises(RecordNotFound):
            engine.sync_entity("customer", "cu_missing")

    def test_unknown_entity_type(self, app_ctx, make_engine):
        engine = make_engine()
        with pytest.raises(UnknownEntityType):
            engine.sync_entity("refund", "re_1")

    def test_resolved_dependency_is_touched(self, app_ctx, source, notion, make_engine):
        """Resolving an already mapped dependency refreshes its updated_at."""
        _seed_charge(source)
        stale = datetime(2020, 1, 1, tzinfo=UTC)
        coordinator = get_coordinator("acct_memory", store_factory=MemoryMappingStore)
        coordinator.store.save(EntityMapping("customer", "cu_1", "page-cu", stale, stale, None))
        engine = make_engine(PAYMENT_DATABASES, tenant_id="acct_memory")

        charge_page = engine.sync_entity("charge", "ch_1")

        assert notion.writes == [("db_charge", "ch_1")]
        assert notion.pages[charge_page]["properties"]["Customer"] == {"relation": [{"id": "page-cu"}]}
        assert coordinator.get_mapping("customer", "cu_1").updated_at > stale
        stored = {m.key: m for m in coordinator.store.load_all()}
        assert stored["entity:customer:cu_1"].updated_at > stale


class TestRequiredDependencies:
    """Test relations a record can't be written without."""

    @pytest.fixture
    def strict_engine(self, app_ctx, make_engine, required_customer_registry):
        """Build engines whose charges can't be written without their customer."""

        def build(databases=PAYMENT_DATABASES):
            return make_engine(databases, registry=required_customer_registry)

        return build

    def test_absent_reference_fails_the_record(self, source, notion, strict_engine):
        source.add("charge", {"id": "ch_1", "object": "charge", "amount": 100})
        engine = strict_engine()

        with pytest.raises(MissingRequiredDependency) as exc_info:
            engine.sync_entity("charge", "ch_1")

        assert exc_info.value.entity_type == "charge"
        assert exc_info.value.dependency_type == "customer"
        assert exc_info.value.source_id == "ch_1"
        assert notion.writes == []

    def test_deleted_dependency_fails_the_record(self, source, notion, strict_engine):
        """A referenced record gone from Stripe surfaces as a missing dependency, not as the record itself gone."""
        source.add("charge", {"id": "ch_1", "object": "charge", "customer": "cu_gone"})
        engine = strict_engine()

        with pytest.raises(MissingRequiredDependency) as exc_info:
            engine.sync_entity("charge", "ch_1")

        assert isinstance(exc_info.value.__cause__, RecordNotFound)
        assert notion.writes == []
        assert get_coordinator(TENANT_ID).get_mapping("charge", "ch_1") is None

    def test_failed_dependency_write_fails_the_record(self, source, notion, strict_engine):
        _seed_charge(source)
        notion.fail("cu_1", DestinationWriteError("Notion API error 400: bad", status=400))
        engine = strict_engine()

        with pytest.raises(MissingRequiredDependency) as exc_info:
            engine.sync_entity("charge", "ch_1")

        assert isinstance(exc_info.value.__cause__, DestinationWriteError)
        assert notion.writes == []

    def test_dependency_without_database_fails_the_record(self, source, notion, strict_engine):
        """A required relation can't be satisfied when its type isn't synced at all."""
        _seed_charge(source)
        engine = strict_engine({"charge": "db_charge"})

        with pytest.raises(MissingRequiredDependency):
            engine.sync_entity("charge", "ch_1")
        assert notion.writes == []

    def test_dependency_already_failed_in_this_call(self, source, notion, strict_engine):
        """A dependency that failed earlier in the same call is not retried and still fails the record."""
        _seed_charge(source)
        notion.fail("cu_1", DestinationWriteError("Notion API error 400: bad", status=400))
        engine = strict_engine()
        processed = set()

        with pytest.raises(DestinationWriteError):
            engine.sync_entity("customer", "cu_1", processed=processed)
        with pytest.raises(MissingRequiredDependency) as exc_info:
            engine.sync_entity("charge", "ch_1", processed=processed)

        assert exc_info.value.__cause__ is None
        assert notion.writes == []

    def test_failure_is_limited_to_the_record(self, source, notion, strict_engine):
        """Other records of the same batch are still written."""
        source.add("customer", {"id": "cu_1", "object": "customer"})
        source.add("charge", {"id": "ch_bad", "object": "charge", "customer": "cu_gone"})
        source.add("charge", {"id": "ch_ok", "object": "charge", "customer": "cu_1"})
        engine = strict_engine()

        failed = []
        for charge_id in ("ch_bad", "ch_ok"):
            try:
                engine.process_entity("charge", charge_id)
            except MissingRequiredDependency:
                failed.append(charge_id)

        assert failed == ["ch_bad"]
        assert notion.writes == [("db_customer", "cu_1"), ("db_charge", "ch_ok")]

    def test_event_is_not_reported_as_deleted(self, source, notion, strict_engine):
        """The webhook must see the failure so Stripe redelivers the event."""
        source.add("charge", {"id": "ch_1", "object": "charge", "customer": "cu_gone"})
        engine = strict_engine()
        event = {"id": "evt_1", "type": "charge.updated", "data": {"object": {"id": "ch_1", "object": "charge"}}}

        with pytest.raises(MissingRequiredDependency):
            engine.process_event(event)
        assert notion.writes == []


class TestProcessEntity:
    """Test top-level processing including embedded children."""

    def test_unchanged_record_is_not_rewritten(self, app_ctx, source, notion, make_engine):
        """Forced reprocessing of unchanged data skips the write, changed data rewrites the same page."""
        source.add("customer", {"id": "cu_1", "object": "customer", "name": "Ada"})
        engine = make_engine(PAYMENT_DATABASES)

        first = engine.process_entity("customer", "cu_1")
        engine.process_entity("customer", "cu_1")
        assert len(notion.writes) == 1

        source.records[("customer", "cu_1")]["name"] = "Ada Lovelace"
        third = engine.process_entity("customer", "cu_1")

        assert len(notion.writes) == 2
        assert third.destination_id == first.destination_id
        assert notion.pages[first.destination_id]["properties"]["Name"] == {
            "rich_text": [{"type": "text", "text": {"content": "Ada Lovelace"}}]
        }

    def test_hash_is_order_independent(self):
        assert hash_properties({"a": 1, "b": 2}) == hash_properties({"b": 2, "a": 1})
        assert hash_properties({"a": 1}) != hash_properties({"a": 2})

    def test_line_items_follow_invoice(self, app_ctx, source, notion, make_engine):
        """Line items are written after the invoice and linked to its page."""
        source.add("customer", {"id": "cu_1", "object": "customer"})
        source.add("invoice", {
            "id": "in_1",
            "object": "invoice",
            "customer": "cu_1",
            "lines": {"object": "list", "data": [
                {"id": "il_1", "object": "line_item", "invoice": "in_1", "amount": 500},
                {"id": "il_2", "object": "line_item", "invoice": "in_1", "amount": 700},
            ]},
        })
        engine = make_engine()

        result = engine.process_entity("invoice", "in_1")

        assert result.sub_entity_failures == 0
        assert result.entities_processed == 4
        assert [value for _, value in notion.writes] == ["cu_1", "in_1", "il_1", "il_2"]
        for line_item in ("il_1", "il_2"):
            _, page = notion.page_for(line_item)
            assert page["properties"]["Invoice"] == {"relation": [{"id": result.destination_id}]}

    def test_failed_child_does_not_fail_parent(self, app_ctx, source, notion, make_engine):
        """A failing line item is counted and the rest of the invoice still syncs."""
        source.add("invoice", {
            "id": "in_1",
            "object": "invoice",
            "lines": {"data": [
                {"id": "il_1", "object": "line_item"},
                {"id": "il_2", "object": "line_item"},
                {"id": "il_3", "object": "line_item"},
            ]},
        })
        notion.fail("il_2", DestinationWriteError("Notion API error 400: bad", status=400))
        engine = make_engine()

        result = engine.process_entity("invoice", "in_1")

        assert result.destination_id is not None
        assert result.sub_entity_failures == 1
        assert notion.page_for("il_1")[0] is not None
        assert notion.page_for("il_3")[0] is not None
        assert get_coordinator(TENANT_ID).get_mapping("invoice", "in_1") is not None

    def test_children_without_database_are_skipped(self, app_ctx, source, notion, make_engine):
        source.add("invoice", {"id": "in_1", "object": "invoice", "lines": {"data": [{"id": "il_1"}]}})
        engine = make_engine({"invoice": "db_invoice"})

        result = engine.process_entity("invoice", "in_1")

        assert result.sub_entity_failures == 0
        assert notion.writes == [("db_invoice", "in_1")]

    def test_customer_discount_is_linked(self, app_ctx, source, notion, make_engine):
        """An attached discount is written with its customer and coupon relations."""
        source.add("coupon", {"id": "co_1", "object": "coupon", "percent_off": 10})
        source.add("customer", {
            "id": "cu_1",
            "object": "customer",
            "discount": {
                "id": "di_1",
                "object": "discount",
                "coupon": {"id": "co_1", "object": "coupon"},
                "customer": "cu_1",
                "start": 1700000000,
            },
        })
        engine = make_engine()

        result = engine.process_entity("customer", "cu_1")

        coupon_page, _ = notion.page_for("co_1")
        _, discount = notion.page_for("di_1")
        assert discount["properties"]["Customer"] == {"relation": [{"id": result.destination_id}]}
        assert discount["properties"]["Coupon"] == {"relation": [{"id": coupon_page}]}


class TestProcessEvent:
    """Test Stripe event dispatch."""

    def _event(self, obj, event_type="customer.updated"):
        return {"id": "evt_1", "object": "event", "type": event_type, "data": {"object": obj}}

    def test_record_is_retrieved_again(self, app_ctx, source, notion, make_engine):
        """The engine syncs the current record, not the possibly stale event payload."""
        source.add("customer", {"id": "cu_1", "object": "customer", "name": "Current"})
        engine = make_engine()

        result = engine.process_event(self._event({"id": "cu_1", "object": "customer", "name": "Stale"}))

        assert result.destination_id is not None
        assert notion.pages[result.destination_id]["properties"]["Name"]["rich_text"][0]["text"]["content"] == "Current"

    def test_unsynchronized_objects_are_ignored(self, app_ctx, source, notion, make_engine):
        engine = make_engine()

        assert engine.process_event(self._event({"id": "txn_1", "object": "balance_transaction"})) is None
        assert engine.process_event(self._event({"id": "il_1", "object": "line_item"})) is None
        assert notion.writes == []

    def test_deleted_record_is_ignored(self, app_ctx, make_engine):
        engine = make_engine()
        event = self._event({"id": "cu_gone", "object": "customer", "deleted": True}, "customer.deleted")
        assert engine.process_event(event) is None

    def test_discount_event(self, app_ctx, source, notion, make_engine):
        """Discount events carry the discount itself, which can't be retrieved."""
        source.add("customer", {"id": "cu_1", "object": "customer"})
        source.add("coupon", {"id": "co_1", "object": "coupon"})
        engine = make_engine()

        discount = {"id": "di_1", "object": "discount", "coupon": {"id": "co_1"}, "customer": "cu_1"}
        result = engine.process_event(self._event(discount, "customer.discount.created"))

        assert result.destination_id is not None
        assert {value for _, value in notion.writes} == {"cu_1", "co_1", "di_1"}


class TestErrorRecording:
    """Test the per-tenant error flags."""

    @pytest.fixture
    def status(self, app_ctx):
        AccountService.save_account(TENANT_ID, notion_token="secret_fake", databases=PAYMENT_DATABASES)
        return SqlTenantStatusStore(TENANT_ID)

    def _errors(self):
        return AccountService.get_status(TENANT_ID)

    def test_entity_error_is_recorded_and_cleared(self, source, notion, make_engine, status):
        """A write failure is stored per entity type and cleared by the next success."""
        _seed_charge(source)
        notion.fail("cu_1", DestinationWriteError("Notion API error 400: bad customer", status=400))
        engine = make_engine(PAYMENT_DATABASES, status=status)

        engine.sync_entity("charge", "ch_1")
        assert self._errors()["entity_errors"] == {"customer": "Notion API error 400: bad customer"}

        notion.failures.clear()
        engine.sync_entity("customer", "cu_1")
        assert self._errors()["entity_errors"] == {}

    def test_auth_error_sets_token_error(self, source, notion, make_engine, status):
        """A rejected token is recorded once and masks per-type errors until a success."""
        _seed_charge(source)
        source.add("customer", {"id": "cu_2", "object": "customer"})
        notion.fail("ch_1", UpstreamAuthError("Notion API error 401: unauthorized", status=401, code="unauthorized"))
        engine = make_engine(PAYMENT_DATABASES, status=status)

        with pytest.raises(UpstreamAuthError):
            engine.sync_entity("charge", "ch_1")
        assert self._errors()["token_error"] == "Notion API error 401: unauthorized"
        assert self._errors()["entity_errors"] == {}

        notion.fail("cu_2", DestinationWriteError("Notion API error 500: down", status=500))
        with pytest.raises(DestinationWriteError):
            engine.sync_entity("customer", "cu_2")
        assert self._errors()["entity_errors"] == {}

        notion.failures.clear()
        engine.sync_entity("charge", "ch_1")
        assert self._errors()["token_error"] is None

    def test_missing_record_is_not_an_error(self, make_engine, status):
        engine = make_engine(PAYMENT_DATABASES, status=status)
        with pytest.raises(RecordNotFound):
            engine.sync_entity("customer", "cu_missing")
        assert self._errors()["entity_errors"] == {}
        assert self._errors()["token_error"] is None

    def test_missing_required_dependency_is_recorded(
        self, source, notion, make_engine, status, required_customer_registry
    ):
        """The dependent's type carries the error, a deleted dependency itself records nothing."""
        source.add("charge", {"id": "ch_1", "object": "charge", "customer": "cu_gone"})
        engine = make_engine(PAYMENT_DATABASES, status=status, registry=required_customer_registry)

        with pytest.raises(MissingRequiredDependency):
            engine.sync_entity("charge", "ch_1")

        assert self._errors()["entity_errors"] == {"charge": "charge ch_1 is missing required dependency customer"}
