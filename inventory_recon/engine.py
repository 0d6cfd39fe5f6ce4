"""
Reconciliation engine: fetch both sources, diff them by SKU, store the report.

Usage:
    engine = ReconciliationEngine(BrightpearlSource(), InfoplusSource(), JsonReportStore())
    report = engine.run_comparison()
"""

import logging
import math
import threading
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from typing import Callable, Iterable, Sequence

import pandas as pd

from . import settings, utils
from .errors import PersistenceError, ReconciliationError, RunInProgressError
from .notifications import Notifier
from .schemas import ComparisonSummary, ConnectionStatus, Discrepancy, NormalizedInventory, Report
from .sources.base import InventorySource
from .store import ReportStore

logger = logging.getLogger(__name__)

INVENTORY_COLUMNS = ["sku", "product_name", "quantity"]


def percentage_difference(difference: int, source_b_quantity: int) -> float:
    """|difference| as a percentage of source B, one decimal, rounded half up. 100 if B has none."""
    if source_b_quantity <= 0:
        return 100.0
    return math.floor(abs(difference) / source_b_quantity * 1000 + 0.5) / 10


def _pick_name(*names) -> str:
    for name in names:
        if isinstance(name, str) and name.strip():
            return name
    return settings.UNKNOWN_PRODUCT


def inventory_frame(inventory: NormalizedInventory) -> pd.DataFrame:
    rows = [record.model_dump() for record in inventory.records.values()]
    return pd.DataFrame(rows, columns=INVENTORY_COLUMNS)


def find_discrepancies(
    source_a: NormalizedInventory,
    source_b: NormalizedInventory,
    ignored_skus: Iterable[str] = (),
) -> list[Discrepancy]:
    """
    Every SKU whose quantity differs between the two sources.

    A SKU missing from one side counts as quantity 0 there. The result is
    sorted by |difference| descending; equal differences are ordered by SKU.
    """
    merged = pd.merge(
        inventory_frame(source_a),
        inventory_frame(source_b),
        on="sku",
        how="outer",
        suffixes=("_a", "_b"),
    )

    ignored = set(ignored_skus)
    if ignored:
        merged = merged[~merged["sku"].isin(ignored)]

    # A side that never listed the SKU has NaN here; that means "0 in stock".
    merged = merged.assign(
        quantity_a=pd.to_numeric(merged["quantity_a"], errors="coerce").fillna(0).astype(int),
        quantity_b=pd.to_numeric(merged["quantity_b"], errors="coerce").fillna(0).astype(int),
    )
    merged["difference"] = merged["quantity_a"] - merged["quantity_b"]
    merged = merged[merged["difference"] != 0].copy()

    merged["abs_difference"] = merged["difference"].abs()
    merged = merged.sort_values(["abs_difference", "sku"], ascending=[False, True], kind="mergesort")

    discrepancies = []
    for row in merged.to_dict("records"):
        difference = int(row["difference"])
        quantity_b = int(row["quantity_b"])
        discrepancies.append(
            Discrepancy(
                sku=row["sku"],
                product_name=_pick_name(row["product_name_a"], row["product_name_b"]),
                source_a_quantity=int(row["quantity_a"]),
                source_b_quantity=quantity_b,
                difference=difference,
                percentage_difference=percentage_difference(difference, quantity_b),
            )
        )
    return discrepancies


class ReconciliationEngine:
    """
    Runs one comparison at a time: both sources are fetched in parallel,
    diffed, and the resulting report is saved and (optionally) mailed out.
    """

    def __init__(
        self,
        source_a: InventorySource,
        source_b: InventorySource,
        store: ReportStore,
        notifier: Notifier | None = None,
        recipients: Sequence[str] = (),
        ignored_skus: Iterable[str] = settings.IGNORED_SKUS,
        summary_limit: int = settings.SUMMARY_LIMIT,
        clock: Callable = utils.utc_now,
    ):
        self.source_a = source_a
        self.source_b = source_b
        self.store = store
        self.notifier = notifier
        self.recipients = list(recipients)
        self.ignored_skus = set(ignored_skus)
        self.summary_limit = summary_limit
        self.clock = clock
        self._run_slot = threading.Lock()
        self._in_flight: list[Future] = []

    @property
    def sources(self) -> dict[str, InventorySource]:
        return {self.source_a.name: self.source_a, self.source_b.name: self.source_b}

    @property
    def is_running(self) -> bool:
        return self._run_slot.locked()

    def run_comparison(self) -> Report:
        """
        Fetch, compare, persist, notify. Returns the stored report.
        Raises RunInProgressError if another run holds the slot; any other
        ReconciliationError means nothing was saved.

        After a failed fetch the error is raised at once, but the slot stays
        held until the other source's fetch has finished too.
        """
        if not self._run_slot.acquire(blocking=False):
            raise RunInProgressError("An inventory comparison is already running.")
        self._in_flight = []
        try:
            return self._run()
        finally:
            self._release_slot_when_settled()

    def _release_slot_when_settled(self) -> None:
        pending = [future for future in self._in_flight if not future.done()]
        self._in_flight = []
        if not pending:
            self._run_slot.release()
            return

        logger.warning(f"⏳ Waiting for {len(pending)} abandoned fetch(es) before accepting a new run.")
        remaining = [len(pending)]
        counter_lock = threading.Lock()

        def settled(_future: Future) -> None:
            with counter_lock:
                remaining[0] -= 1
                last = remaining[0] == 0
            if last:
                logger.info("✅ Abandoned fetches finished, run slot released.")
                self._run_slot.release()

        for future in pending:
            future.add_done_callback(settled)

    def _run(self) -> Report:
        logger.info("🔄 Starting inventory comparison...")
        inventory_a, inventory_b = self.fetch_both()
        logger.info(f"📊 {self.source_a.name} items: {len(inventory_a)}")
        logger.info(f"📊 {self.source_b.name} items: {len(inventory_b)}")
        self.log_sku_diagnostics(inventory_a, inventory_b)

        all_skus = (inventory_a.skus() | inventory_b.skus()) - self.ignored_skus
        logger.info(f"🔍 Analyzing {len(all_skus)} unique SKUs...")
        discrepancies = find_discrepancies(inventory_a, inventory_b, self.ignored_skus)
        logger.info(f"✅ Found {len(discrepancies)} discrepancies out of {len(all_skus)} SKUs")

        created_at = self.clock()
        report = Report(
            date=created_at.date(),
            created_at=created_at,
            total_discrepancies=len(discrepancies),
            discrepancies=discrepancies,
            source_a_total_items=len(inventory_a),
            source_b_total_items=len(inventory_b),
            total_skus_analyzed=len(all_skus),
        )

        try:
            saved = self.store.save(report)
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Report could not be saved: {e}", report=report) from e

        self.notify(saved)
        return saved

    def fetch_both(self) -> tuple[NormalizedInventory, NormalizedInventory]:
        """Fetches both sources concurrently. The first failure aborts the run."""
        pool = ThreadPoolExecutor(max_workers=2, thread_name_prefix="inventory-fetch")
        try:
            futures = {
                pool.submit(self.source_a.fetch_inventory): self.source_a,
                pool.submit(self.source_b.fetch_inventory): self.source_b,
            }
            self._in_flight = list(futures)
            done, _ = wait(futures, return_when=FIRST_EXCEPTION)
            for future in done:
                error = future.exception()
                if error is None:
                    continue
                source = futures[future]
                logger.error(f"❌ {source.name} fetch failed: {error}")
                if isinstance(error, ReconciliationError):
                    raise error
                raise ReconciliationError(f"{source.name} fetch failed: {error}") from error
            fut_a, fut_b = futures
            return fut_a.result(), fut_b.result()
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

    def log_sku_diagnostics(self, inventory_a: NormalizedInventory, inventory_b: NormalizedInventory) -> None:
        """Match statistics only. Matching itself stays exact."""
        matches = len(inventory_a.skus() & inventory_b.skus())
        logger.info(f"🎯 Exact SKU matches between sources: {matches}")

        skus_a = sorted(inventory_a.skus())
        if utils.looks_like_internal_ids(skus_a):
            logger.warning(
                f"🚨 WARNING: {self.source_a.name} SKUs look like product IDs, not actual SKUs "
                f"(e.g. {', '.join(skus_a[:3])}). The wrong field may be mapped."
            )

    def notify(self, report: Report) -> None:
        """Best effort. A failed notification never fails the run."""
        if self.notifier is None or not self.recipients:
            logger.info("INFO: No notification recipients configured. Skipping notification.")
            return
        if report.total_discrepancies == 0:
            logger.info("INFO: No discrepancies found. Skipping notification.")
            return
        try:
            self.notifier.send(report, self.recipients)
        except Exception as e:
            logger.error(f"❌ Failed to send report notification: {e}")

    def summarize(self, report: Report) -> ComparisonSummary:
        """The report trimmed for a synchronous caller; the stored report keeps every row."""
        return ComparisonSummary(
            report_id=report.id,
            total_discrepancies=report.total_discrepancies,
            discrepancies=report.discrepancies[: self.summary_limit],
            source_a_items=report.source_a_total_items,
            source_b_items=report.source_b_total_items,
            total_skus_analyzed=report.total_skus_analyzed,
            message=f"Inventory comparison completed - analyzed {report.total_skus_analyzed} SKUs",
        )

    def test_source_connection(self, source_id: str) -> ConnectionStatus:
        source = self.sources.get(source_id)
        if source is None:
            known = ", ".join(self.sources)
            return ConnectionStatus(success=False, message=f"Unknown source '{source_id}' (known: {known})")
        return source.test_connection()
