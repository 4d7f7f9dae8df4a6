"""
Degraded-Mode Synthesizer — Internally Consistent Placeholder Results.

Used when the store is unreachable, the payload is unusable, or the selection
matches no production. A monthly series is generated first and every
dependent view is derived from it, so totals reconcile across views:

    KPI total units      == sum(series units)
    KPI total rejections == sum(series defects) == sum(distribution counts)

The random source is injectable; pass ``random.Random(seed)`` for
reproducible output.
"""

import random
from datetime import tzinfo
from typing import Optional

import structlog

from moldkpi.engine.monthly_aggregator import (
    defect_rate,
    month_key,
    month_label,
    months_in_range,
)
from moldkpi.models.kpis import (
    KPIResult,
    MonthlyEntry,
    ProductionTargetEntry,
    RejectionReasonEntry,
)
from moldkpi.models.telemetry import TimeRange

logger = structlog.get_logger()

BASE_REASONS = (("Short Molding", 0.861), ("Black Spot", 0.139))
MEDIUM_VOLUME_REASONS = (("Flash", 0.08), ("Silver Mark", 0.05))
HIGH_VOLUME_REASONS = (("Burn Mark", 0.03), ("Warpage", 0.02))
MEDIUM_VOLUME_THRESHOLD = 100
HIGH_VOLUME_THRESHOLD = 500

BASE_PRODUCTION = 1200
BASE_TARGET = 1300


class DegradedModeSynthesizer:
    """
    Generates synthetic KPI views.

    Attributes:
        rng: Random source
        timezone: Plant timezone used to enumerate months (defaults to the
            range's own timezone)
    """

    def __init__(self, rng: Optional[random.Random] = None, timezone: Optional[tzinfo] = None):
        self.rng = rng or random.Random()
        self.timezone = timezone

    def _months(self, time_range: TimeRange) -> list[tuple[int, int]]:
        return months_in_range(time_range, self.timezone or time_range.start.tzinfo)

    def monthly_series(self, time_range: TimeRange) -> list[MonthlyEntry]:
        """
        Synthetic monthly series covering every month of the range.

        Each month's units vary 70-130% around a base of 8000-12000; the defect
        rate wanders +/-0.75 points around a base of 1.5-3.5%, floored at 0.1%.
        The reported rate is recomputed from the rounded counts.
        """
        base_units = self.rng.uniform(8000, 12000)
        base_rate = self.rng.uniform(1.5, 3.5)

        series = []
        for year, month in self._months(time_range):
            variation = self.rng.uniform(0.7, 1.3)
            units = round(base_units * variation)
            rate = max(0.1, base_rate + (self.rng.random() - 0.5) * 1.5)
            defects = round(units * rate / 100)
            series.append(
                MonthlyEntry(
                    month=month_key(year, month),
                    label=month_label(year, month),
                    units_produced=float(units),
                    defect_units=float(defects),
                    defect_rate=defect_rate(defects, units),
                )
            )

        logger.info(
            "synthetic_monthly_series_generated",
            months=len(series),
            total_units=sum(entry.units_produced for entry in series),
        )
        return series

    def reason_distribution(self, total_rejections: float) -> list[RejectionReasonEntry]:
        """
        Split a rejection total across a fixed reason mix.

        Larger totals bring in more reasons; shares are re-normalized and the
        last reason takes the remainder, so counts sum exactly to the total.

        Args:
            total_rejections: Rejected units to distribute

        Returns:
            Entries sorted by count descending; empty when the total is <= 0
        """
        total = round(total_rejections)
        if total <= 0:
            return []

        mix = list(BASE_REASONS)
        if total > MEDIUM_VOLUME_THRESHOLD:
            mix.extend(MEDIUM_VOLUME_REASONS)
        if total > HIGH_VOLUME_THRESHOLD:
            mix.extend(HIGH_VOLUME_REASONS)
        share_sum = sum(share for _, share in mix)

        entries = []
        assigned = 0
        for index, (reason, share) in enumerate(mix):
            if index == len(mix) - 1:
                count = total - assigned
            else:
                count = round(total * share / share_sum)
                assigned += count
            if count > 0:
                entries.append(
                    RejectionReasonEntry(
                        reason=reason,
                        count=float(count),
                        percentage=round(count / total * 100, 1),
                    )
                )

        entries.sort(key=lambda entry: entry.count, reverse=True)
        return entries

    def kpi_result(
        self,
        machine: str,
        mold: str,
        time_range: TimeRange,
        series: Optional[list[MonthlyEntry]] = None,
        date_range: str = "",
    ) -> KPIResult:
        """
        Synthetic KPI snapshot derived from a monthly series.

        Args:
            machine: Selected machine, echoed
            mold: Selected mold, echoed
            time_range: Resolved window, echoed
            series: Series to derive totals from (generated when omitted)
            date_range: Formatted window string, echoed

        Returns:
            KPIResult with ``is_synthetic=True``
        """
        if series is None:
            series = self.monthly_series(time_range)

        total_units = sum(entry.units_produced for entry in series)
        total_rejections = sum(entry.defect_units for entry in series)

        return KPIResult(
            total_units_produced=total_units,
            total_rejection=total_rejections,
            post_event_defect_rate=round(self.rng.uniform(0, 0.1), 2),
            total_downtime_hours=round(self.rng.uniform(30, 50), 2),
            mold_health_index=round(self.rng.uniform(75, 95), 2),
            top_rejection_reasons=self.reason_distribution(total_rejections)[:3],
            document_count=450 + self.rng.randint(0, 50),
            date_range=date_range,
            time_range=time_range,
            machine=machine,
            mold=mold,
            cycle_time_seconds=0.0,
            is_synthetic=True,
        )

    def production_vs_target(self, time_range: TimeRange) -> list[ProductionTargetEntry]:
        """Synthetic production (1200-1399) and target (1300-1449) per month."""
        return [
            ProductionTargetEntry(
                month=month_key(year, month),
                label=month_label(year, month),
                production=BASE_PRODUCTION + self.rng.randint(0, 199),
                target=BASE_TARGET + self.rng.randint(0, 149),
            )
            for year, month in self._months(time_range)
        ]
