import logging
from abc import ABC, abstractmethod
from typing import Any

from pydantic import ValidationError

from inventory_recon.client import ApiClient
from inventory_recon.errors import FetchError, SourceAuthError
from inventory_recon.schemas import ConnectionStatus, InventoryRecord, NormalizedInventory

logger = logging.getLogger(__name__)


def to_quantity(value: Any) -> int:
    """Missing, blank, negative or unrepresentable stock counts as zero."""
    if value is None or value == "":
        return 0
    try:
        return max(int(float(value)), 0)
    except (TypeError, ValueError, OverflowError):
        return 0


class InventorySource(ABC):
    """
    Abstract base class for an inventory system we reconcile against.
    Follows an Extract -> Normalize pattern: subclasses pull raw records
    through their ApiClient and turn them into a NormalizedInventory.
    """

    #: short identifier used by the engine and the CLI ("brightpearl", "infoplus", ...)
    name: str = "source"

    def __init__(self, client: ApiClient):
        self.client = client

    @abstractmethod
    def fetch_inventory(self) -> NormalizedInventory:
        """Fetches the full inventory and returns it keyed by SKU."""

    @abstractmethod
    def _probe(self) -> str:
        """
        Issues one cheap request. Returns a human readable success message,
        raises FetchError if the source is unreachable or answers nonsense.
        """

    def test_connection(self) -> ConnectionStatus:
        """Checks credentials and reachability without touching any report."""
        logger.info(f"🧪 Testing {self.name} connection...")
        try:
            message = self._probe()
        except SourceAuthError as e:
            logger.error(f"❌ {self.name} connection test failed: {e}")
            return ConnectionStatus(
                success=False,
                message=f"Authentication failed - check API credentials and permissions ({e})",
            )
        except FetchError as e:
            logger.error(f"❌ {self.name} connection test failed: {e}")
            return ConnectionStatus(success=False, message=f"Connection failed: {e}")
        return ConnectionStatus(success=True, message=message)

    def _new_inventory(self) -> NormalizedInventory:
        return NormalizedInventory(source=self.name)

    def _add_record(
        self, inventory: NormalizedInventory, sku: Any, product_name: Any, quantity: Any
    ) -> bool:
        """
        Adds one record if it has a usable SKU. Returns False (and counts the drop)
        otherwise, so a SKU-less record can never reach the map.
        """
        if not isinstance(sku, str) or not sku.strip():
            inventory.skipped += 1
            return False
        try:
            record = InventoryRecord(
                sku=sku,
                product_name=str(product_name).strip() if product_name else "",
                quantity=to_quantity(quantity),
            )
        except ValidationError as e:
            logger.warning(f"⚠️ {self.name}: dropping malformed record for SKU {sku!r}: {e}")
            inventory.skipped += 1
            return False
        inventory.add(record)
        return True

    def _log_result(self, inventory: NormalizedInventory) -> None:
        logger.info(f"✅ {self.name}: {len(inventory)} unique SKUs")
        if inventory.skipped:
            logger.warning(f"⚠️ {self.name}: skipped {inventory.skipped} records without a usable SKU")
