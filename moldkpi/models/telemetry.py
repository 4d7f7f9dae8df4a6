"""
Telemetry input models.

This module defines the normalized telemetry document produced from raw
store rows and the resolved time window every KPI computation runs over.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class TelemetryDocument(BaseModel):
    """
    One machine-cycle or status record after normalization.

    Numeric fields hold ``None`` when the raw value was missing, blank,
    non-numeric or non-finite. A raw ``0`` or ``"0"`` stays ``0.0``.

    Attributes:
        document_id: Store record identifier, when present
        device_id: Machine the record belongs to
        timestamp: Primary record time in plant time
        alternate_timestamp: First parseable fallback time field
        units_produced: Units produced in this record
        rejection_count: Rejected units in this record
        rejection_reason: Free-text rejection reason
        downtime_seconds: Downtime duration reported by this record
        status_indicator: Free-text machine status
        mold_identifier: Mold mounted on the machine
        target_units: Planned production for this record
    """

    model_config = ConfigDict(frozen=True)

    document_id: Optional[str] = None
    device_id: str = ""
    timestamp: Optional[datetime] = None
    alternate_timestamp: Optional[datetime] = None
    units_produced: Optional[float] = None
    rejection_count: Optional[float] = None
    rejection_reason: Optional[str] = None
    downtime_seconds: Optional[float] = None
    status_indicator: Optional[str] = None
    mold_identifier: Optional[str] = None
    target_units: Optional[float] = None

    @field_validator("timestamp", "alternate_timestamp")
    @classmethod
    def require_aware(cls, v: Optional[datetime]) -> Optional[datetime]:
        """Timestamps are compared against aware range bounds."""
        if v is not None and v.tzinfo is None:
            raise ValueError("Telemetry timestamps must be timezone-aware")
        return v

    @property
    def resolved_timestamp(self) -> Optional[datetime]:
        """Primary timestamp, else the first parseable fallback field."""
        return self.timestamp or self.alternate_timestamp


class TimeRange(BaseModel):
    """
    A resolved reporting window.

    Half-open ``[start, end)`` as requested from the store; ``end`` may be
    "today at the cycle boundary" while a period is still in progress.
    """

    model_config = ConfigDict(frozen=True)

    start: datetime = Field(description="Window start (plant time)")
    end: datetime = Field(description="Window end (plant time)")
    label: str = Field(default="", description="Human readable window name")

    @model_validator(mode="after")
    def validate_order(self) -> "TimeRange":
        """Ensure start does not come after end."""
        if self.start > self.end:
            raise ValueError(
                f"Time range start {self.start.isoformat()} is after end {self.end.isoformat()}"
            )
        return self

    def contains(self, instant: datetime) -> bool:
        """Inclusive containment check used by the month-bucketed views."""
        return self.start <= instant <= self.end
