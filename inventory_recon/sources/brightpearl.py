import logging
import time
from typing import Any, Callable

from inventory_recon import settings, utils
from inventory_recon.client import ApiClient
from inventory_recon.errors import FetchError
from inventory_recon.schemas import NormalizedInventory
from inventory_recon.sources.base import InventorySource, to_quantity

logger = logging.getLogger(__name__)

PRODUCT_SEARCH = "product-service/product-search"
AVAILABILITY = "warehouse-service/product-availability"

# product-search returns positional rows; these are the columns we read.
PRODUCT_ID_COL = 0
PRODUCT_NAME_COL = 1
SKU_COL = 2
STOCK_TRACKED_COL = 8


def _unwrap(payload: Any) -> Any:
    """Brightpearl wraps every body in {"response": ...}."""
    if isinstance(payload, dict) and "response" in payload:
        return payload["response"]
    return payload


def _cell(row: list, index: int) -> Any:
    return row[index] if len(row) > index else None


def _extract_product_page(payload: Any, page_size: int) -> tuple[list[Any], bool]:
    body = _unwrap(payload)
    results = body.get("results") or []
    more = bool((body.get("metaData") or {}).get("morePagesAvailable", False))
    return list(results), more


def sum_available_stock(product_availability: Any) -> int:
    """
    Sums `availableStock` over every warehouse a product is held in.
    Accepts either {"warehouses": {id: {...}}} or a flat {id: {...}} mapping.
    """
    if not isinstance(product_availability, dict):
        return 0
    locations = product_availability.get("warehouses", product_availability)
    if not isinstance(locations, dict):
        return 0
    total = 0
    for stock in locations.values():
        if isinstance(stock, dict):
            total += to_quantity(stock.get("availableStock"))
    return total


class BrightpearlSource(InventorySource):
    """
    Source A: the order-management system.

    Two phases: the product catalog gives SKU, name and product id, then
    availability is fetched per product id in small batches. A failed batch
    is logged and its products keep quantity 0; the catalog phase is all-or-nothing.
    """

    name = "brightpearl"

    def __init__(
        self,
        client: ApiClient | None = None,
        page_size: int = settings.BRIGHTPEARL_PAGE_SIZE,
        max_pages: int = settings.BRIGHTPEARL_MAX_PAGES,
        batch_size: int = settings.BRIGHTPEARL_BATCH_SIZE,
        batch_delay: float = settings.BRIGHTPEARL_BATCH_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ):
        super().__init__(client or self.default_client(sleep=sleep))
        self.page_size = page_size
        self.max_pages = max_pages
        self.batch_size = batch_size
        self.batch_delay = batch_delay
        self.sleep = sleep

    @classmethod
    def default_client(cls, sleep: Callable[[float], None] = time.sleep) -> ApiClient:
        return ApiClient(
            source=cls.name,
            base_url=f"{settings.BRIGHTPEARL_BASE_URL}/{settings.BRIGHTPEARL_ACCOUNT}",
            headers={
                "brightpearl-app-ref": settings.BRIGHTPEARL_APP_REF or "",
                "brightpearl-staff-token": settings.BRIGHTPEARL_TOKEN or "",
            },
            sleep=sleep,
            rate_limit_header="brightpearl-requests-remaining",
        )

    def fetch_inventory(self) -> NormalizedInventory:
        logger.info("🚀 Starting Brightpearl inventory fetch...")
        inventory = self._new_inventory()

        products = self.fetch_products(inventory)
        if not products:
            logger.warning("⚠️ No products found in Brightpearl")
            return inventory

        logger.info(f"📊 Found {len(products)} Brightpearl products, fetching availability...")
        levels = self.fetch_availability(list(products))

        for product_id, product in products.items():
            self._add_record(
                inventory,
                sku=product["sku"],
                product_name=product["name"],
                quantity=levels.get(product_id, 0),
            )

        self._log_result(inventory)
        return inventory

    def fetch_products(self, inventory: NormalizedInventory) -> dict[str, dict[str, Any]]:
        """
        Catalog phase. Returns {product_id: {"sku", "name"}} for stock-tracked
        products that carry a SKU; every other row is counted on `inventory.skipped`.
        """
        logger.info("📊 Fetching Brightpearl products...")
        rows = self.client.fetch_all(
            PRODUCT_SEARCH,
            page_size=self.page_size,
            build_params=lambda offset, size: {
                "pageSize": size,
                "firstResult": offset + 1,
                "filter": "stockTracked eq true",
            },
            extract_page=_extract_product_page,
            max_pages=self.max_pages,
        )
        logger.info(f"✅ Found {len(rows)} stock-tracked Brightpearl products")

        products: dict[str, dict[str, Any]] = {}
        for row in rows:
            if not isinstance(row, list):
                inventory.skipped += 1
                continue
            product_id = _cell(row, PRODUCT_ID_COL)
            sku = _cell(row, SKU_COL)
            stock_tracked = _cell(row, STOCK_TRACKED_COL)
            if product_id in (None, "") or not isinstance(sku, str) or not sku.strip() or not stock_tracked:
                inventory.skipped += 1
                continue
            products[str(product_id)] = {
                "sku": sku.strip(),
                "name": _cell(row, PRODUCT_NAME_COL),
            }
        return products

    def fetch_availability(self, product_ids: list[str]) -> dict[str, int]:
        """
        Availability phase. Batches run one after another with a pause in
        between; a batch that fails is skipped so the rest can still complete.
        """
        levels: dict[str, int] = {}
        batches = list(utils.chunked(product_ids, self.batch_size))

        for number, batch in enumerate(batches, start=1):
            logger.info(
                f"📦 Fetching availability batch {number}/{len(batches)} ({len(batch)} products)"
            )
            endpoint = f"{AVAILABILITY}/{','.join(batch)}"
            try:
                body = _unwrap(self.client.get(endpoint))
                if isinstance(body, dict) and isinstance(body.get("results"), dict):
                    body = body["results"]
                if not isinstance(body, dict):
                    raise FetchError(
                        "Unexpected availability response shape",
                        source=self.name, endpoint=endpoint,
                    )
                for product_id, availability in body.items():
                    levels[str(product_id)] = sum_available_stock(availability)
            except FetchError as e:
                logger.warning(f"⚠️ Failed to fetch availability for batch {number}: {e}")

            if number < len(batches):
                self.sleep(self.batch_delay)

        logger.info(f"✅ Processed availability for {len(levels)} products")
        return levels

    def _probe(self) -> str:
        body = _unwrap(self.client.get(PRODUCT_SEARCH, {"pageSize": 1}))
        if not isinstance(body, dict) or not ("results" in body or "metaData" in body):
            raise FetchError(
                "Connected but received unexpected response format",
                source=self.name, endpoint=PRODUCT_SEARCH,
            )
        total = (body.get("metaData") or {}).get("resultsAvailable", 0)
        return f"Brightpearl connection successful! Found {total} products available."
