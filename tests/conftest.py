"""
Pytest configuration and shared fixtures for the mold KPI test suite.

Provides raw-row and document factories, an in-memory document store,
a fixed-clock calendar resolver, and an API client with the engine and
calendar dependencies overridden.
"""

import asyncio
import os
import random
from datetime import datetime
from typing import Optional
from uuid import uuid4
from zoneinfo import ZoneInfo

import pytest
from fastapi.testclient import TestClient

# Set testing environment BEFORE importing app
os.environ["TESTING"] = "true"
os.environ["LOG_LEVEL"] = "warning"

from moldkpi.config import EngineConfig, FieldCodes
from moldkpi.connectors.store_client import DocumentStore, StoreAPIError
from moldkpi.engine.calendar import CalendarResolver
from moldkpi.engine.degraded_mode import DegradedModeSynthesizer
from moldkpi.engine.kpi_engine import KPIEngine
from moldkpi.models.telemetry import TelemetryDocument, TimeRange

PLANT_TZ = ZoneInfo("Asia/Kolkata")
MAPPING_DEVICE = "SDPLYPLC_AM2_MoldMapping"


# ---------------------------------------------------------------------------
# Factories — reusable across all test suites
# ---------------------------------------------------------------------------


def plant_time(year: int, month: int, day: int, hour: int = 10, minute: int = 0) -> datetime:
    """Aware datetime in plant time."""
    return datetime(year, month, day, hour, minute, tzinfo=PLANT_TZ)


def make_row(
    timestamp: Optional[str] = "2025-07-10T10:00:00",
    units: Optional[object] = None,
    rejections: Optional[object] = None,
    reason: Optional[str] = None,
    downtime: Optional[object] = None,
    status: Optional[str] = None,
    mold: Optional[str] = "TRAY-A",
    target: Optional[object] = None,
    device_id: str = "M1",
    **top_level,
) -> dict:
    """Factory for raw store rows; omitted fields stay absent from ``data``."""
    data = {}
    for code, value in (
        ("D6", units),
        ("D52", rejections),
        ("D53", reason),
        ("D9", downtime),
        ("D2", status),
        ("D17", mold),
        ("D10", target),
    ):
        if value is not None:
            data[code] = value

    row = {"_id": uuid4().hex, "devID": device_id, "data": data}
    if timestamp is not None:
        row["timestamp"] = timestamp
    row.update(top_level)
    return row


def make_document(
    timestamp: Optional[datetime] = None,
    units: Optional[float] = None,
    rejections: Optional[float] = None,
    reason: Optional[str] = None,
    downtime: Optional[float] = None,
    status: Optional[str] = None,
    mold: Optional[str] = "TRAY-A",
    target: Optional[float] = None,
    **overrides,
) -> TelemetryDocument:
    """Factory for normalized telemetry documents."""
    defaults = dict(
        document_id=uuid4().hex,
        device_id="M1",
        timestamp=timestamp,
        units_produced=units,
        rejection_count=rejections,
        rejection_reason=reason,
        downtime_seconds=downtime,
        status_indicator=status,
        mold_identifier=mold,
        target_units=target,
    )
    defaults.update(overrides)
    return TelemetryDocument(**defaults)


def make_time_range(
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    label: str = "test window",
) -> TimeRange:
    """Factory for resolved windows; defaults to Q3 2025 on the cycle boundary."""
    return TimeRange(
        start=start or plant_time(2025, 7, 1, 8),
        end=end or plant_time(2025, 9, 30, 8),
        label=label,
    )


def mapping_row(mold: str, cycle_time: object) -> dict:
    """Row of the mold-to-cycle-time mapping device."""
    return {"_id": uuid4().hex, "devID": MAPPING_DEVICE, "data": {"D0": mold, "D2": cycle_time}}


class FakeStore(DocumentStore):
    """
    In-memory DocumentStore for unit tests.

    Rows are served per device; ``fail`` makes every telemetry fetch raise a
    StoreError and ``fail_reference`` does the same for the mapping device.
    Calls are recorded for assertions.
    """

    def __init__(
        self,
        rows: Optional[list] = None,
        reference_rows: Optional[list] = None,
        fail: bool = False,
        fail_reference: bool = False,
        delay: float = 0.0,
    ):
        self.rows = list(rows or [])
        self.reference_rows = list(reference_rows or [])
        self.fail = fail
        self.fail_reference = fail_reference
        self.delay = delay
        self.fetch_calls: list[tuple] = []
        self.reference_calls: list[tuple] = []

    async def fetch(self, device_id, start, end, limit=10000):
        self.fetch_calls.append((device_id, start, end, limit))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise StoreAPIError("store unreachable")
        return [row for row in self.rows if row.get("devID", device_id) == device_id]

    async def fetch_reference(self, reference_device_id, limit=1000):
        self.reference_calls.append((reference_device_id, limit))
        if self.fail_reference:
            raise StoreAPIError("mapping unreachable")
        return list(self.reference_rows)[:limit]


def round_trip_rows() -> list[dict]:
    """Machine M1, mold TRAY-A: three July and two August cycles."""
    return [
        make_row("2025-07-05T10:00:00", units=100, rejections=2, reason="Short Molding"),
        make_row("2025-07-15T10:00:00", units=150, rejections=3, reason="Flash"),
        make_row("2025-07-25T10:00:00", units=50, rejections=1, reason="Short Molding"),
        make_row("2025-08-05T10:00:00", units=200, rejections=4, reason="Black Spot"),
        make_row("2025-08-15T10:00:00", units=100, rejections=2, reason="Short Molding"),
    ]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def plant_tz():
    return PLANT_TZ


@pytest.fixture
def fields():
    return FieldCodes()


@pytest.fixture
def engine_config():
    return EngineConfig(request_timeout_seconds=2.0)


@pytest.fixture
def fixed_clock():
    """Clock frozen at 2025-08-20 14:30 plant time (Q3)."""
    return lambda: plant_time(2025, 8, 20, 14, 30)


@pytest.fixture
def resolver(fixed_clock):
    return CalendarResolver(PLANT_TZ, boundary_hour=8, clock=fixed_clock)


@pytest.fixture
def window():
    return make_time_range()


@pytest.fixture
def seeded_synthesizer():
    return DegradedModeSynthesizer(rng=random.Random(42), timezone=PLANT_TZ)


@pytest.fixture
def fake_store():
    return FakeStore(
        rows=round_trip_rows(),
        reference_rows=[mapping_row("TRAY-A", 36)],
    )


@pytest.fixture
def engine(fake_store, engine_config, seeded_synthesizer):
    return KPIEngine(store=fake_store, config=engine_config, synthesizer=seeded_synthesizer)


@pytest.fixture
def client(engine, resolver):
    """FastAPI test client with engine and calendar bound to in-memory fakes."""
    from moldkpi.engine import get_calendar, get_engine
    from moldkpi.main import app

    app.dependency_overrides[get_engine] = lambda: engine
    app.dependency_overrides[get_calendar] = lambda: resolver
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
