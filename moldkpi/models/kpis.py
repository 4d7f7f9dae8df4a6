"""
KPI result models.

Every result is constructed fresh per request and never mutated afterwards;
nothing here is cached or persisted.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .enums import KPIView
from .telemetry import TimeRange

UNKNOWN_REASON = "Unknown Reason"


class MonthlyEntry(BaseModel):
    """
    One calendar month of the defect-rate series.

    Attributes:
        month: Year-month key (``YYYY-MM``)
        label: Display label (``Jul 2025``)
        units_produced: Sum of valid unit counts in the month
        defect_units: Sum of valid rejection counts in the month
        defect_rate: ``defect_units / units_produced * 100``, 0 for idle months
    """

    model_config = ConfigDict(frozen=True)

    month: str = Field(description="Year-month key (YYYY-MM)")
    label: str = Field(description="Display label, e.g. 'Jul 2025'")
    units_produced: float = Field(default=0.0, description="Units produced in the month")
    defect_units: float = Field(default=0.0, description="Rejected units in the month")
    defect_rate: float = Field(default=0.0, description="Defect rate percentage")


class ProductionTargetEntry(BaseModel):
    """Actual versus planned production for one calendar month."""

    model_config = ConfigDict(frozen=True)

    month: str = Field(description="Year-month key (YYYY-MM)")
    label: str = Field(description="Display label, e.g. 'Jul 2025'")
    production: int = Field(default=0, description="Rounded sum of produced units")
    target: int = Field(default=0, description="Rounded sum of target units")


class RejectionReasonEntry(BaseModel):
    """
    A rejection reason with its accumulated count.

    ``percentage`` is the share of the grand total of positive rejection
    counts, rounded to one decimal.
    """

    model_config = ConfigDict(frozen=True)

    reason: str = Field(default=UNKNOWN_REASON, description="Rejection reason text")
    count: float = Field(gt=0, description="Accumulated rejected units")
    percentage: float = Field(ge=0.0, le=100.0, description="Share of total rejections")

    @field_validator("reason", mode="before")
    @classmethod
    def default_blank_reason(cls, v: Optional[str]) -> str:
        """Blank reasons collapse into the sentinel."""
        if v is None or not str(v).strip():
            return UNKNOWN_REASON
        return str(v).strip()

    @property
    def percentage_label(self) -> str:
        """Percentage formatted for display."""
        return f"{self.percentage:.1f}%"


class KPIResult(BaseModel):
    """
    Immutable KPI snapshot for one machine / mold / window selection.

    Attributes:
        total_units_produced: Sum of valid unit counts over mold documents
        total_rejection: Sum of valid rejection counts over mold documents
        post_event_defect_rate: Defect rate of production following downtime
        total_downtime_hours: Positive downtime seconds converted to hours
        mold_health_index: Composite 0-100 health score
        top_rejection_reasons: Ranked top-N rejection reasons
        document_count: Number of mold-matched documents
        date_range: Formatted echo of the fetched window
        time_range: Resolved window
        machine: Selected machine (device identifier)
        mold: Selected mold identifier
        cycle_time_seconds: Cycle time used for the health index (0 = unknown)
        is_synthetic: True when the snapshot came from degraded mode
    """

    model_config = ConfigDict(frozen=True)

    total_units_produced: float = Field(description="Total units produced")
    total_rejection: float = Field(description="Total rejected units")
    post_event_defect_rate: float = Field(description="Post-downtime defect rate (%)")
    total_downtime_hours: float = Field(ge=0.0, description="Total downtime (hours)")
    mold_health_index: float = Field(ge=0.0, le=100.0, description="Mold Health Index (%)")
    top_rejection_reasons: list[RejectionReasonEntry] = Field(default_factory=list)
    document_count: int = Field(ge=0, description="Mold-matched documents")
    date_range: str = Field(description="Formatted fetched window")
    time_range: TimeRange = Field(description="Resolved window")
    machine: str = Field(description="Selected machine")
    mold: str = Field(description="Selected mold")
    cycle_time_seconds: float = Field(default=0.0, ge=0.0, description="Mold cycle time")
    is_synthetic: bool = Field(default=False, description="Produced by degraded mode")


class DashboardSnapshot(BaseModel):
    """All four dashboard views derived from a single telemetry fetch."""

    model_config = ConfigDict(frozen=True)

    kpis: KPIResult
    monthly_series: list[MonthlyEntry]
    rejection_breakdown: list[RejectionReasonEntry]
    production_vs_target: list[ProductionTargetEntry]
    synthetic_views: list[KPIView] = Field(
        default_factory=list, description="Views that were synthesized"
    )
