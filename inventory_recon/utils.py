from datetime import date, datetime, timezone
from typing import Iterator, Sequence, TypeVar

T = TypeVar("T")


def get_date_suffix_for_filename(day: date | None = None) -> str:
    """Returns the date as a YYYY-MM-DD string for filenames."""
    return (day or date.today()).strftime("%Y-%m-%d")


def utc_now() -> datetime:
    """Timezone-aware 'now', used for report timestamps."""
    return datetime.now(timezone.utc)


def chunked(items: Sequence[T], size: int) -> Iterator[list[T]]:
    """Yields consecutive slices of at most `size` items."""
    if size < 1:
        raise ValueError("chunk size must be at least 1")
    for start in range(0, len(items), size):
        yield list(items[start : start + size])


def looks_like_internal_ids(skus: Sequence[str], max_avg_length: float = 6.0) -> bool:
    """
    True when every SKU is purely numeric and they are short on average,
    which usually means a product id column was read instead of the SKU.
    """
    if not skus:
        return False
    all_numeric = all(sku.isdigit() for sku in skus)
    avg_length = sum(len(sku) for sku in skus) / len(skus)
    return all_numeric and avg_length < max_avg_length
