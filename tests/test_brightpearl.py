import pytest

from conftest import FakeResponse
from inventory_recon.errors import SourceAuthError
from inventory_recon.sources.brightpearl import BrightpearlSource, sum_available_stock


def product_row(product_id, name, sku, stock_tracked=True):
    # id, name, SKU, ... stockTracked lives in column 8
    return [product_id, name, sku, None, None, None, None, None, stock_tracked]


def catalog_page(rows, more=False, total=None):
    return {
        "response": {
            "results": rows,
            "metaData": {"morePagesAvailable": more, "resultsAvailable": total or len(rows)},
        }
    }


def availability(levels):
    """{product_id: [warehouse stock, ...]} -> Brightpearl availability body."""
    return {
        "response": {
            str(pid): {
                "total": {"inStock": sum(stocks)},
                "warehouses": {str(n): {"availableStock": s} for n, s in enumerate(stocks, start=2)},
            }
            for pid, stocks in levels.items()
        }
    }


def ids_in(url):
    return url.rsplit("/", 1)[1].split(",")


@pytest.fixture
def make_source(make_client, sleeps):
    def _make(handler, **kwargs):
        client, session = make_client(handler, source="brightpearl", base_url="https://bp.test/public-api/acct")
        return BrightpearlSource(client=client, sleep=sleeps, **kwargs), session

    return _make


def test_sum_available_stock_handles_both_shapes():
    assert sum_available_stock({"warehouses": {"1": {"availableStock": 3}, "2": {"availableStock": 4}}}) == 7
    assert sum_available_stock({"1": {"availableStock": 5}, "2": {"onHand": 9}}) == 5
    assert sum_available_stock({"1": {"availableStock": None}}) == 0
    assert sum_available_stock(None) == 0


def test_fetch_inventory_joins_catalog_and_availability(make_source):
    rows = [
        product_row(1, "Bath Towel", " TWL-001 "),
        product_row(2, "Hand Towel", "TWL-002"),
        product_row(3, "No Sku Product", ""),
        product_row(4, "Service Item", "SVC-1", stock_tracked=False),
    ]

    def handler(url, params):
        if "product-search" in url:
            return FakeResponse(200, catalog_page(rows))
        assert sorted(ids_in(url)) == ["1", "2"]
        return FakeResponse(200, availability({1: [3, 4], 2: [10]}))

    source, _ = make_source(handler)
    inventory = source.fetch_inventory()

    assert inventory.source == "brightpearl"
    assert set(inventory.records) == {"TWL-001", "TWL-002"}
    assert inventory.get("TWL-001").quantity == 7
    assert inventory.get("TWL-001").product_name == "Bath Towel"
    assert inventory.get("TWL-002").quantity == 10
    assert inventory.skipped == 2


def test_catalog_paging_uses_one_based_first_result(make_source, sleeps):
    pages = [
        catalog_page([product_row(1, "A", "A-1"), product_row(2, "B", "B-1")], more=True),
        catalog_page([product_row(3, "C", "C-1")], more=False),
    ]

    def handler(url, params):
        if "product-search" in url:
            return FakeResponse(200, pages.pop(0))
        return FakeResponse(200, availability({}))

    source, session = make_source(handler, page_size=2)
    inventory = source.fetch_inventory()

    searches = [c["params"] for c in session.calls if "product-search" in c["url"]]
    assert [p["firstResult"] for p in searches] == [1, 3]
    assert all(p["filter"] == "stockTracked eq true" for p in searches)
    # products without availability default to zero
    assert {r.quantity for r in inventory.records.values()} == {0}


def test_failed_availability_batch_defaults_to_zero(make_source):
    """200 products in batches of 50; the second batch keeps failing."""
    rows = [product_row(i, f"Product {i}", f"SKU-{i:03d}") for i in range(1, 201)]

    def handler(url, params):
        if "product-search" in url:
            return FakeResponse(200, catalog_page(rows))
        ids = ids_in(url)
        if "51" in ids:
            return FakeResponse(500, text="availability service down")
        return FakeResponse(200, availability({int(i): [5] for i in ids}))

    source, session = make_source(handler, batch_size=50)
    inventory = source.fetch_inventory()

    assert len(inventory) == 200
    zero = {sku for sku, record in inventory.records.items() if record.quantity == 0}
    assert zero == {f"SKU-{i:03d}" for i in range(51, 101)}
    assert inventory.get("SKU-001").quantity == 5
    assert inventory.get("SKU-200").quantity == 5
    # 1 catalog call + 3 good batches + 3 attempts for the failing one
    assert len(session.calls) == 7


def test_batches_are_spaced_by_batch_delay(make_source, sleeps):
    rows = [product_row(i, "P", f"S{i}") for i in range(1, 6)]

    def handler(url, params):
        if "product-search" in url:
            return FakeResponse(200, catalog_page(rows))
        return FakeResponse(200, availability({int(i): [1] for i in ids_in(url)}))

    source, _ = make_source(handler, batch_size=2, batch_delay=0.5)
    source.fetch_inventory()

    # three batches -> two pauses, none after the last
    assert sleeps.delays == [0.5, 0.5]


def test_catalog_auth_error_aborts_the_fetch(make_source):
    source, session = make_source(lambda url, params: FakeResponse(401, text="invalid staff token"))

    with pytest.raises(SourceAuthError):
        source.fetch_inventory()
    assert len(session.calls) == 1


def test_empty_catalog_skips_availability(make_source):
    source, session = make_source(lambda url, params: FakeResponse(200, catalog_page([])))

    inventory = source.fetch_inventory()

    assert len(inventory) == 0
    assert all("product-search" in c["url"] for c in session.calls)


def test_connection_reports_product_count(make_source):
    source, session = make_source(lambda url, params: FakeResponse(200, catalog_page([], total=1234)))

    status = source.test_connection()

    assert status.success
    assert "1234" in status.message
    assert session.calls[0]["params"] == {"pageSize": 1}


def test_connection_failure_is_reported_not_raised(make_source):
    source, _ = make_source(lambda url, params: FakeResponse(403, text="forbidden"))

    status = source.test_connection()

    assert not status.success
    assert status.message.startswith("Authentication failed")
