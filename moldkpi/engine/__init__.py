"""
Mold KPI engine core components.

This package contains the analytical components behind the KPI views:

- Calendar resolution: period selectors to 08:00-bounded plant-time windows
- Normalization: raw store rows to typed telemetry documents, mold filtering
- Monthly aggregation: gap-free defect-rate series
- Post-event detection: defect rate of production following downtime
- Mold Health Index: rejection and downtime penalties against expected runtime
- Rejection ranking and production-vs-target aggregation
- Degraded mode: internally consistent synthetic views

All components are pure over their inputs except the store-facing lookups,
and receive their configuration through constructors.
"""

from functools import lru_cache

from moldkpi.config import get_settings
from moldkpi.connectors import get_store
from moldkpi.engine.calendar import CalendarResolver
from moldkpi.engine.degraded_mode import DegradedModeSynthesizer
from moldkpi.engine.kpi_engine import KPIEngine

__version__ = "1.0.0"

__all__ = [
    "CalendarResolver",
    "DegradedModeSynthesizer",
    "KPIEngine",
    "get_calendar",
    "get_engine",
]


@lru_cache
def get_engine() -> KPIEngine:
    """
    Get cached KPI engine instance (singleton).

    Returns:
        KPIEngine wired to the configured store
    """
    return KPIEngine(store=get_store(), config=get_settings().engine_config())


@lru_cache
def get_calendar() -> CalendarResolver:
    """Get cached calendar resolver for the plant timezone."""
    config = get_settings().engine_config()
    return CalendarResolver(config.timezone, boundary_hour=config.cycle_boundary_hour)
