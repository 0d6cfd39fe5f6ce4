"""Shared fakes: an HTTP session that never touches the network, sources and stores."""

from datetime import datetime, timezone
from typing import Callable

import pytest

from inventory_recon.client import ApiClient
from inventory_recon.schemas import InventoryRecord, NormalizedInventory, Report
from inventory_recon.sources.base import InventorySource
from inventory_recon.store import ReportStore

INVALID_JSON = object()


class FakeResponse:
    def __init__(self, status_code: int = 200, payload=None, text: str = "", headers=None):
        self.status_code = status_code
        self._payload = payload
        self.text = text or ("" if payload is None else str(payload))
        self.headers = headers or {}

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self):
        if self._payload is INVALID_JSON:
            raise ValueError("Expecting value: line 1 column 1 (char 0)")
        return self._payload


class FakeSession:
    """
    Stands in for requests.Session. `handler(url, params)` returns a FakeResponse
    or raises (e.g. requests.ConnectionError). Every call is recorded.
    """

    def __init__(self, handler: Callable):
        self.handler = handler
        self.calls: list[dict] = []

    def get(self, url, headers=None, params=None, timeout=None):
        self.calls.append({"url": url, "headers": headers, "params": dict(params or {})})
        return self.handler(url, params or {})


def responses(*items):
    """Handler that replays `items` in order; exceptions in the list are raised."""
    queue = list(items)

    def handler(url, params):
        item = queue.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    return handler


class SleepRecorder:
    def __init__(self):
        self.delays: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def sleeps():
    return SleepRecorder()


@pytest.fixture
def make_client(sleeps):
    def _make(handler, source="test", base_url="https://api.test/v1", page_delay=0.2, **kwargs):
        session = FakeSession(handler)
        client = ApiClient(
            source=source,
            base_url=base_url,
            headers={"X-Key": "secret"},
            session=session,
            page_delay=page_delay,
            sleep=sleeps,
            **kwargs,
        )
        return client, session

    return _make


def make_inventory(source: str, quantities: dict, names: dict | None = None) -> NormalizedInventory:
    names = names or {}
    inventory = NormalizedInventory(source=source)
    for sku, quantity in quantities.items():
        inventory.add(InventoryRecord(sku=sku, product_name=names.get(sku, f"Product {sku}"), quantity=quantity))
    return inventory


class FakeSource(InventorySource):
    """Returns a canned inventory, or raises `error`. `before_fetch` runs first."""

    def __init__(self, name, quantities=None, names=None, error=None, before_fetch=None):
        self.client = None
        self.name = name
        self.quantities = quantities or {}
        self.names = names
        self.error = error
        self.before_fetch = before_fetch
        self.fetch_calls = 0

    def fetch_inventory(self) -> NormalizedInventory:
        self.fetch_calls += 1
        if self.before_fetch:
            self.before_fetch()
        if self.error:
            raise self.error
        return make_inventory(self.name, self.quantities, self.names)

    def _probe(self) -> str:
        if self.error:
            raise self.error
        return f"{self.name} ok"


class RecordingStore(ReportStore):
    def __init__(self, error: Exception | None = None):
        self.saved: list[Report] = []
        self.error = error

    def save(self, report: Report) -> Report:
        if self.error:
            raise self.error
        stored = report.model_copy(update={"id": f"r{len(self.saved) + 1}"})
        self.saved.append(stored)
        return stored

    def list_recent(self, limit: int = 30) -> list[Report]:
        return sorted(self.saved, key=lambda r: r.created_at, reverse=True)[:limit]

    def get(self, report_id):
        return next((r for r in self.saved if r.id == report_id), None)

    def delete(self, report_id) -> bool:
        before = len(self.saved)
        self.saved = [r for r in self.saved if r.id != report_id]
        return len(self.saved) < before


class RecordingNotifier:
    def __init__(self, error: Exception | None = None):
        self.sent: list[tuple[Report, list[str]]] = []
        self.error = error

    def send(self, report, recipients):
        if self.error:
            raise self.error
        self.sent.append((report, list(recipients)))


FIXED_NOW = datetime(2024, 5, 17, 19, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_NOW
