"""
Enumeration types for the mold KPI engine.

All enums inherit from str to ensure JSON serialization compatibility.
"""

from enum import Enum


class TimePeriod(str, Enum):
    """
    Time period selectors understood by the calendar resolver.

    Quarters are calendar quarters anchored to the operational cycle
    boundary (08:00 plant time) rather than midnight.
    """

    CURRENT_QUARTER = "current-quarter"
    LAST_QUARTER = "last-quarter"
    Q1 = "q1"
    Q2 = "q2"
    Q3 = "q3"
    Q4 = "q4"
    CUSTOM = "custom"


class StatusClass(str, Enum):
    """Classification of a telemetry status indicator."""

    DOWNTIME = "downtime"
    PRODUCTION = "production"
    UNKNOWN = "unknown"


class DetectorState(str, Enum):
    """States of the post-event scan."""

    NORMAL = "normal"
    FOLLOWING_DOWNTIME = "following_downtime"


class KPIView(str, Enum):
    """Independently computed dashboard views."""

    KPIS = "kpis"
    MONTHLY_SERIES = "monthly_series"
    REJECTION_BREAKDOWN = "rejection_breakdown"
    PRODUCTION_VS_TARGET = "production_vs_target"
