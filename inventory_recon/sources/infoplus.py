import logging
import time
from typing import Any, Callable

from inventory_recon import settings
from inventory_recon.client import ApiClient
from inventory_recon.errors import FetchError
from inventory_recon.schemas import NormalizedInventory
from inventory_recon.sources.base import InventorySource

logger = logging.getLogger(__name__)

ITEM_SEARCH = "item/search"
WAREHOUSE_SEARCH = "warehouse/search"


def _extract_item_page(payload: Any, page_size: int) -> tuple[list[Any], bool]:
    # Infoplus has no "more pages" flag: a full page means there may be another.
    if not isinstance(payload, list):
        raise TypeError(f"expected a JSON list, got {type(payload).__name__}")
    return payload, len(payload) == page_size


def _first_present(item: dict, *keys: str) -> Any:
    for key in keys:
        value = item.get(key)
        if value not in (None, "", 0):
            return value
    return None


class InfoplusSource(InventorySource):
    """
    Source B: the warehouse-management system.
    A single item listing carries both identity and quantity.
    """

    name = "infoplus"

    def __init__(
        self,
        client: ApiClient | None = None,
        lob_id: str = settings.INFOPLUS_LOB_ID,
        page_size: int = settings.INFOPLUS_PAGE_SIZE,
        max_pages: int = settings.INFOPLUS_MAX_PAGES,
        sleep: Callable[[float], None] = time.sleep,
    ):
        super().__init__(client or self.default_client(sleep=sleep))
        self.lob_id = lob_id
        self.page_size = page_size
        self.max_pages = max_pages

    @classmethod
    def default_client(cls, sleep: Callable[[float], None] = time.sleep) -> ApiClient:
        return ApiClient(
            source=cls.name,
            base_url=f"{settings.INFOPLUS_BASE_URL}/{settings.INFOPLUS_API_VERSION}",
            headers={"API-Key": settings.INFOPLUS_API_KEY or ""},
            sleep=sleep,
        )

    def fetch_inventory(self) -> NormalizedInventory:
        logger.info("📊 Fetching Infoplus inventory...")
        items = self.client.fetch_all(
            ITEM_SEARCH,
            page_size=self.page_size,
            build_params=lambda offset, size: {
                "limit": size,
                "offset": offset,
                "filter": f"lobId eq {self.lob_id}",
            },
            extract_page=_extract_item_page,
            max_pages=self.max_pages,
        )
        logger.info(f"✅ Found {len(items)} Infoplus items")

        inventory = self._new_inventory()
        for item in items:
            if not isinstance(item, dict):
                inventory.skipped += 1
                continue
            self._add_record(
                inventory,
                sku=item.get("sku"),
                product_name=_first_present(item, "itemDescription", "itemShortDescription"),
                quantity=_first_present(item, "availableQuantity", "quantityOnHand"),
            )

        self._log_result(inventory)
        return inventory

    def _probe(self) -> str:
        data = self.client.get(WAREHOUSE_SEARCH, {"limit": 1})
        if not isinstance(data, list):
            raise FetchError(
                "Connected but received unexpected response format",
                source=self.name, endpoint=WAREHOUSE_SEARCH,
            )
        found = "warehouses" if data else "empty warehouse list"
        return f"Infoplus connection successful! Found {found}."
