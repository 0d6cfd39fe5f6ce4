from datetime import date, datetime
from pydantic import BaseModel, ConfigDict, Field, field_validator


class InventoryRecord(BaseModel):
    """
    One source's view of a single SKU, built fresh on every run.
    Quantities are already summed across the source's locations.
    """

    model_config = ConfigDict(populate_by_name=True)

    sku: str = Field(..., min_length=1)
    product_name: str = Field(default="", alias="productName")
    quantity: int = Field(default=0, ge=0)

    @field_validator("sku")
    @classmethod
    def strip_sku(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("SKU must not be blank")
        return value


class NormalizedInventory(BaseModel):
    """
    SKU -> InventoryRecord for one source. Keys are exact, case-sensitive SKUs.
    `skipped` counts raw records dropped because they had no usable SKU.
    """

    source: str
    records: dict[str, InventoryRecord] = Field(default_factory=dict)
    skipped: int = 0

    def add(self, record: InventoryRecord) -> None:
        # Duplicate SKUs within one source overwrite silently (last one wins).
        self.records[record.sku] = record

    def get(self, sku: str) -> InventoryRecord | None:
        return self.records.get(sku)

    def skus(self) -> set[str]:
        return set(self.records)

    def __contains__(self, sku: object) -> bool:
        return sku in self.records

    def __len__(self) -> int:
        return len(self.records)


class Discrepancy(BaseModel):
    """A SKU whose quantity differs between the two sources."""

    model_config = ConfigDict(populate_by_name=True)

    sku: str
    product_name: str = Field(..., alias="productName")
    source_a_quantity: int = Field(..., alias="sourceA_quantity")
    source_b_quantity: int = Field(..., alias="sourceB_quantity")
    difference: int
    percentage_difference: float = Field(..., alias="percentageDifference")


class Report(BaseModel):
    """
    The persisted outcome of one comparison run.
    Immutable once saved; `id` is assigned by the report store.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str | None = None
    date: date
    created_at: datetime = Field(..., alias="createdAt")
    total_discrepancies: int = Field(..., ge=0, alias="totalDiscrepancies")
    discrepancies: list[Discrepancy] = Field(default_factory=list)
    source_a_total_items: int = Field(default=0, ge=0, alias="sourceA_totalItems")
    source_b_total_items: int = Field(default=0, ge=0, alias="sourceB_totalItems")
    total_skus_analyzed: int = Field(default=0, ge=0, alias="totalSkusAnalyzed")


class ComparisonSummary(BaseModel):
    """What a synchronous caller gets back: the report minus most of its rows."""

    model_config = ConfigDict(populate_by_name=True)

    report_id: str | None = Field(default=None, alias="reportId")
    total_discrepancies: int = Field(..., alias="totalDiscrepancies")
    discrepancies: list[Discrepancy] = Field(default_factory=list)
    source_a_items: int = Field(default=0, alias="sourceA_items")
    source_b_items: int = Field(default=0, alias="sourceB_items")
    total_skus_analyzed: int = Field(default=0, alias="totalSkusAnalyzed")
    message: str = ""


class ConnectionStatus(BaseModel):
    success: bool
    message: str
