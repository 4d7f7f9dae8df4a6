"""
Monthly Aggregator — Gap-free Monthly Defect-Rate Series.

Buckets mold-filtered documents by calendar month (plant time) and sums
units produced and rejected units per bucket; negative values are skipped.
Every month the window touches is seeded with zero sums before any document
is processed, so idle months still appear in the series.

The window check here is inclusive on both ends while the store fetch is
half-open; documents are therefore double-checked against ``[start, end]``.
"""

import calendar
from collections.abc import Iterable
from datetime import datetime, tzinfo

import structlog

from moldkpi.engine.normalize import is_valid_count
from moldkpi.models.kpis import MonthlyEntry
from moldkpi.models.telemetry import TelemetryDocument, TimeRange

logger = structlog.get_logger()


def month_key(year: int, month: int) -> str:
    """Year-month key, ``YYYY-MM``."""
    return f"{year:04d}-{month:02d}"


def month_label(year: int, month: int) -> str:
    """Display label, ``Jul 2025``."""
    return f"{calendar.month_abbr[month]} {year}"


def months_in_range(time_range: TimeRange, timezone: tzinfo) -> list[tuple[int, int]]:
    """
    Every (year, month) the window touches, in chronological order.

    Args:
        time_range: Resolved window
        timezone: Plant timezone the months are counted in

    Returns:
        List of (year, month) tuples, inclusive of the start and end months
    """
    start = time_range.start.astimezone(timezone)
    end = time_range.end.astimezone(timezone)

    months = []
    year, month = start.year, start.month
    while (year, month) <= (end.year, end.month):
        months.append((year, month))
        year, month = (year + 1, 1) if month == 12 else (year, month + 1)
    return months


def defect_rate(defects: float, units: float) -> float:
    """Defect percentage, 0 when nothing was produced."""
    if units > 0:
        return defects / units * 100
    return 0.0


class MonthlyAggregator:
    """
    Aggregates documents into a chronological monthly series.

    Attributes:
        timezone: Plant timezone used for month boundaries

    Example:
        >>> aggregator = MonthlyAggregator(ZoneInfo("Asia/Kolkata"))
        >>> series = aggregator.aggregate(mold_docs, window)
        >>> [(m.month, m.units_produced) for m in series]
        [('2025-07', 300.0), ('2025-08', 300.0)]
    """

    def __init__(self, timezone: tzinfo):
        self.timezone = timezone

    def aggregate(
        self,
        documents: Iterable[TelemetryDocument],
        time_range: TimeRange,
    ) -> list[MonthlyEntry]:
        """
        Bucket documents by month and sum units and defects.

        Args:
            documents: Mold-filtered documents
            time_range: Resolved window (checked inclusively)

        Returns:
            One MonthlyEntry per month touched by the window, ascending
        """
        buckets: dict[str, dict] = {}
        for year, month in months_in_range(time_range, self.timezone):
            buckets[month_key(year, month)] = {
                "label": month_label(year, month),
                "units_produced": 0.0,
                "defect_count": 0.0,
            }

        undated = 0
        outside = 0
        for document in documents:
            timestamp = document.resolved_timestamp
            if timestamp is None:
                undated += 1
                continue
            if not time_range.contains(timestamp):
                outside += 1
                continue

            bucket = self._bucket_for(buckets, timestamp)
            if is_valid_count(document.units_produced):
                bucket["units_produced"] += document.units_produced
            if is_valid_count(document.rejection_count):
                bucket["defect_count"] += document.rejection_count

        series = [
            MonthlyEntry(
                month=key,
                label=bucket["label"],
                units_produced=bucket["units_produced"],
                defect_units=bucket["defect_count"],
                defect_rate=defect_rate(bucket["defect_count"], bucket["units_produced"]),
            )
            for key, bucket in sorted(buckets.items())
        ]

        logger.debug(
            "monthly_series_aggregated",
            months=len(series),
            undated_skipped=undated,
            outside_window_skipped=outside,
            total_units=sum(entry.units_produced for entry in series),
        )
        return series

    def _bucket_for(self, buckets: dict[str, dict], timestamp: datetime) -> dict:
        local = timestamp.astimezone(self.timezone)
        key = month_key(local.year, local.month)
        if key not in buckets:
            logger.warning("month_bucket_not_preseeded", month=key)
            buckets[key] = {
                "label": month_label(local.year, local.month),
                "units_produced": 0.0,
                "defect_count": 0.0,
            }
        return buckets[key]
