"""
Pydantic v2 data models for the mold KPI engine.

Model Organization:
    - enums: Enumeration types for selectors and classifications
    - telemetry: Normalized telemetry documents and resolved time windows
    - kpis: Monthly series, rejection ranking, production vs target and
      KPI snapshot results
"""

from .enums import DetectorState, KPIView, StatusClass, TimePeriod
from .kpis import (
    UNKNOWN_REASON,
    DashboardSnapshot,
    KPIResult,
    MonthlyEntry,
    ProductionTargetEntry,
    RejectionReasonEntry,
)
from .telemetry import TelemetryDocument, TimeRange

__all__ = [
    "DetectorState",
    "KPIView",
    "StatusClass",
    "TimePeriod",
    "UNKNOWN_REASON",
    "DashboardSnapshot",
    "KPIResult",
    "MonthlyEntry",
    "ProductionTargetEntry",
    "RejectionReasonEntry",
    "TelemetryDocument",
    "TimeRange",
]
