"""
Production-vs-Target Aggregator — Monthly Actual and Planned Units.

Runs alongside the monthly defect-rate series but sums two other fields:
units produced and target units. Months are seeded from the window; dated
documents are bucketed by plant-time month without a window check, and a
bucket is created on demand for a month the window did not seed.
"""

from collections.abc import Iterable
from datetime import tzinfo

import structlog

from moldkpi.engine.monthly_aggregator import month_key, month_label, months_in_range
from moldkpi.engine.normalize import is_valid_count
from moldkpi.models.kpis import ProductionTargetEntry
from moldkpi.models.telemetry import TelemetryDocument, TimeRange

logger = structlog.get_logger()


class ProductionTargetAggregator:
    """
    Aggregates actual versus target production per month.

    Attributes:
        timezone: Plant timezone used for month boundaries
    """

    def __init__(self, timezone: tzinfo):
        self.timezone = timezone

    def aggregate(
        self,
        documents: Iterable[TelemetryDocument],
        time_range: TimeRange,
    ) -> list[ProductionTargetEntry]:
        """
        Sum production and target per month.

        Args:
            documents: Mold-filtered documents
            time_range: Resolved window used to seed months

        Returns:
            Chronological entries with rounded integer sums
        """
        buckets: dict[str, dict] = {
            month_key(year, month): {
                "label": month_label(year, month),
                "production": 0.0,
                "target": 0.0,
            }
            for year, month in months_in_range(time_range, self.timezone)
        }

        used = 0
        for document in documents:
            production = document.units_produced
            target = document.target_units
            if not is_valid_count(production) and not is_valid_count(target):
                continue

            timestamp = document.resolved_timestamp
            if timestamp is None:
                continue

            local = timestamp.astimezone(self.timezone)
            key = month_key(local.year, local.month)
            bucket = buckets.setdefault(
                key,
                {"label": month_label(local.year, local.month), "production": 0.0, "target": 0.0},
            )
            if is_valid_count(production):
                bucket["production"] += production
            if is_valid_count(target):
                bucket["target"] += target
            used += 1

        entries = [
            ProductionTargetEntry(
                month=key,
                label=bucket["label"],
                production=round(bucket["production"]),
                target=round(bucket["target"]),
            )
            for key, bucket in sorted(buckets.items())
        ]

        logger.debug(
            "production_vs_target_aggregated",
            months=len(entries),
            documents_used=used,
        )
        return entries
