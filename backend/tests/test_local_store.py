"""
Terminal local store tests.

Verifies:
- Catalog cache is replaced wholesale (including to empty)
- Pending sales survive a reopen of the database file
- Cached stock is decremented on save and never goes below zero
- Sync state transitions and abandonment after max attempts
- Sync log pruning, settings, export and clear
"""

from datetime import timedelta

import pytest

from pos_terminal.local_store import LocalStore, LocalStoreError, PRODUCTS_CACHED_AT
from pos_terminal.models import PendingSale, SaleSyncState, SyncLog, utcnow


PRODUCTS = [
    {"id": 1, "sku": "WID-001", "name": "Widget", "price_cents": 1000, "stock_quantity": 10,
     "barcode": "111111", "is_active": True, "is_taxable": True},
    {"id": 2, "sku": "GAD-001", "name": "Gadget", "price_cents": 2500, "stock_quantity": 3,
     "barcode": "222222", "is_active": True, "is_taxable": True},
    {"id": 3, "sku": "OLD-001", "name": "Retired Thing", "price_cents": 100, "stock_quantity": 0,
     "is_active": False},
]

CUSTOMERS = [
    {"id": 7, "first_name": "Dana", "last_name": "Reyes", "phone": "5550100", "loyalty_points": 12},
    {"id": 8, "first_name": "Lee", "last_name": "Ames", "phone": "5550199"},
]


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "terminal.sqlite3")


@pytest.fixture
def store(db_path):
    s = LocalStore(db_path)
    yield s
    s.close()


def make_sale(local_id: str, items=None, created_at=None) -> PendingSale:
    items = items if items is not None else [
        {"product_id": 1, "sku": "WID-001", "product_name": "Widget", "quantity": 2,
         "price_cents": 1000, "discount_cents": 0, "tax_cents": 165, "total_cents": 2165},
    ]
    return PendingSale(
        local_id=local_id,
        items=items,
        subtotal_cents=2000,
        tax_cents=165,
        discount_cents=0,
        total_cents=2165,
        payment_method="CASH",
        amount_paid_cents=2165,
        change_due_cents=0,
        created_at=created_at or utcnow(),
    )


# =============================================================================
# CATALOG CACHE
# =============================================================================


class TestCatalogCache:

    def test_cache_products_replaces_everything(self, store):
        assert store.cache_products(PRODUCTS) == 3
        assert [p.sku for p in store.get_all_products()] == ["GAD-001", "OLD-001", "WID-001"]

        store.cache_products(PRODUCTS[:1])
        assert [p.id for p in store.get_all_products()] == [1]

    def test_cache_products_to_empty(self, store):
        store.cache_products(PRODUCTS)
        assert store.cache_products([]) == 0
        assert store.get_all_products() == []
        assert store.get_setting(PRODUCTS_CACHED_AT) is not None

    def test_get_products_returns_active_only(self, store):
        store.cache_products(PRODUCTS)
        assert {p.id for p in store.get_products()} == {1, 2}

    def test_lookup_by_id_and_barcode(self, store):
        store.cache_products(PRODUCTS)
        assert store.get_product_by_id(2).name == "Gadget"
        assert store.get_product_by_barcode("111111").id == 1
        assert store.get_product_by_barcode("999999") is None
        assert store.get_product_by_id(42) is None

    def test_search_products_is_case_insensitive(self, store):
        store.cache_products(PRODUCTS)
        assert [p.id for p in store.search_products("widg")] == [1]
        assert [p.id for p in store.search_products("gad-")] == [2]
        assert [p.id for p in store.search_products("2222")] == [2]

    def test_customers_cache_and_phone_lookup(self, store):
        assert store.cache_customers(CUSTOMERS) == 2
        assert [c.last_name for c in store.get_customers()] == ["Ames", "Reyes"]
        assert store.search_customer_by_phone(" 5550100 ").id == 7
        assert store.get_customer_by_id(7).loyalty_points == 12

        store.cache_customers([])
        assert store.get_customers() == []


# =============================================================================
# PENDING SALES
# =============================================================================


class TestPendingSales:

    def test_save_assigns_id_and_logs_create(self, store):
        sale_id = store.save_pending_sale(make_sale("a"))
        assert sale_id is not None

        saved = store.get_pending_sale(sale_id)
        assert saved.state is SaleSyncState.QUEUED
        assert saved.synced is False
        assert saved.sync_attempts == 0

        logs = store.get_sync_logs()
        assert len(logs) == 1
        assert (logs[0].type, logs[0].action, logs[0].local_id, logs[0].success) == ("sale", "create", "a", True)

    def test_save_decrements_cached_stock_with_floor(self, store):
        store.cache_products(PRODUCTS)
        items = [
            {"product_id": 1, "quantity": 4, "price_cents": 1000},
            {"product_id": 2, "quantity": 5, "price_cents": 2500},
            {"product_id": 99, "quantity": 1, "price_cents": 100},
        ]
        store.save_pending_sale(make_sale("a", items=items))

        assert store.get_product_by_id(1).stock_quantity == 6
        assert store.get_product_by_id(2).stock_quantity == 0

    def test_pending_sales_survive_reopen(self, db_path):
        first = LocalStore(db_path)
        first.save_pending_sale(make_sale("durable"))
        first.close()

        reopened = LocalStore(db_path)
        try:
            pending = reopened.get_pending_sales()
            assert [s.local_id for s in pending] == ["durable"]
            assert pending[0].items[0]["quantity"] == 2
        finally:
            reopened.close()

    def test_pending_sales_oldest_first(self, store):
        now = utcnow()
        store.save_pending_sale(make_sale("newer", created_at=now))
        store.save_pending_sale(make_sale("older", created_at=now - timedelta(minutes=5)))

        assert [s.local_id for s in store.get_pending_sales()] == ["older", "newer"]

    def test_duplicate_local_id_rejected(self, store):
        store.save_pending_sale(make_sale("dup"))
        with pytest.raises(LocalStoreError):
            store.save_pending_sale(make_sale("dup"))
        assert store.get_pending_sale_count() == 1

    def test_mark_synced_removes_from_pending(self, store):
        sale_id = store.save_pending_sale(make_sale("a"))
        store.mark_sale_submitting(sale_id)
        sale = store.mark_sale_as_synced(sale_id, 501)

        assert sale.state is SaleSyncState.SYNCED
        assert sale.synced is True
        assert sale.server_id == "501"
        assert store.get_pending_sales() == []
        assert store.get_pending_sale_count() == 0
        assert len(store.get_all_pending_sales()) == 1

    def test_mark_synced_twice_same_id_is_noop(self, store):
        sale_id = store.save_pending_sale(make_sale("a"))
        store.mark_sale_as_synced(sale_id, "501")
        store.mark_sale_as_synced(sale_id, "501")
        assert store.get_pending_sale(sale_id).server_id == "501"

    def test_mark_synced_with_different_id_rejected(self, store):
        sale_id = store.save_pending_sale(make_sale("a"))
        store.mark_sale_as_synced(sale_id, "501")
        with pytest.raises(LocalStoreError):
            store.mark_sale_as_synced(sale_id, "502")
        assert store.get_pending_sale(sale_id).server_id == "501"

    def test_failed_attempts_then_abandoned(self, store):
        sale_id = store.save_pending_sale(make_sale("a"))

        for attempt in range(1, 5):
            sale = store.mark_sale_sync_failed(sale_id, f"boom {attempt}")
            assert sale.state is SaleSyncState.FAILED
            assert sale.sync_attempts == attempt
            assert sale.is_submittable

        sale = store.mark_sale_sync_failed(sale_id, "boom 5")
        assert sale.state is SaleSyncState.ABANDONED
        assert sale.sync_attempts == 5
        assert sale.sync_error == "boom 5"
        assert not sale.is_submittable

        # Abandoned sales still count as pending
        assert store.get_pending_sale_count() == 1
        with pytest.raises(LocalStoreError):
            store.mark_sale_submitting(sale_id)

    def test_failing_a_synced_sale_rejected(self, store):
        sale_id = store.save_pending_sale(make_sale("a"))
        store.mark_sale_as_synced(sale_id, "1")
        with pytest.raises(LocalStoreError):
            store.mark_sale_sync_failed(sale_id, "late failure")

    def test_unknown_sale_rejected(self, store):
        with pytest.raises(LocalStoreError):
            store.mark_sale_as_synced(12345, "1")

    def test_delete_synced_sales(self, store):
        synced_id = store.save_pending_sale(make_sale("a"))
        store.save_pending_sale(make_sale("b"))
        store.mark_sale_as_synced(synced_id, "9")

        assert store.delete_synced_sales() == 1
        assert [s.local_id for s in store.get_all_pending_sales()] == ["b"]


# =============================================================================
# SYNC LOG / SETTINGS / MAINTENANCE
# =============================================================================


class TestMaintenance:

    def test_clear_old_sync_logs(self, store):
        with store._transaction() as session:
            session.add(SyncLog(type="sale", action="sync", local_id="old", success=False,
                                error="x", timestamp=utcnow() - timedelta(days=10)))
        store.add_sync_log(type="sale", action="sync", local_id="new", success=True, server_id="3")

        assert store.clear_old_sync_logs(7) == 1
        assert [log.local_id for log in store.get_sync_logs()] == ["new"]

    def test_sync_logs_newest_first_with_limit(self, store):
        for n in range(3):
            store.add_sync_log(type="sale", action="sync", local_id=str(n), success=True)
        assert [log.local_id for log in store.get_sync_logs(limit=2)] == ["2", "1"]

    def test_settings_roundtrip(self, store):
        assert store.get_setting("token", "none") == "none"
        store.set_setting("terminal", {"name": "Front counter", "lane": 2})
        store.set_setting("terminal", {"name": "Back counter", "lane": 3})
        assert store.get_setting("terminal") == {"name": "Back counter", "lane": 3}

        store.delete_setting("terminal")
        assert store.get_setting("terminal") is None

    def test_stats_export_and_clear(self, store, db_path):
        store.cache_products(PRODUCTS)
        store.cache_customers(CUSTOMERS)
        store.save_pending_sale(make_sale("a"))

        stats = store.get_stats()
        assert stats["products"] == 3
        assert stats["customers"] == 2
        assert stats["pending_sales"] == 1
        assert stats["sync_logs"] == 1
        assert stats["db_size"] > 0

        exported = store.export_data()
        assert len(exported["products"]) == 3
        assert exported["pending_sales"][0]["local_id"] == "a"
        assert exported["pending_sales"][0]["sync_state"] == "queued"

        store.clear_all()
        stats = store.get_stats()
        assert (stats["products"], stats["customers"], stats["pending_sales"], stats["sync_logs"]) == (0, 0, 0, 0)
