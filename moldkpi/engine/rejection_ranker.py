"""
Rejection Reason Ranker — Rejected Units by Reason.

Documents whose rejection count is missing, non-numeric or not positive are
skipped entirely: they add neither to a reason nor to the grand total.
Blank reasons are grouped under "Unknown Reason".
"""

from collections.abc import Iterable
from typing import Optional

import structlog

from moldkpi.engine.normalize import filter_by_mold
from moldkpi.models.kpis import UNKNOWN_REASON, RejectionReasonEntry
from moldkpi.models.telemetry import TelemetryDocument, TimeRange

logger = structlog.get_logger()


class RejectionReasonRanker:
    """
    Aggregates and ranks rejection reasons for a mold.

    Example:
        >>> ranker = RejectionReasonRanker()
        >>> [(e.reason, e.count) for e in ranker.top_reasons(docs, "TRAY-A")]
        [('Short Molding', 40.0), ('Flash', 12.0), ('Unknown Reason', 5.0)]
    """

    def tally(
        self,
        documents: Iterable[TelemetryDocument],
        mold: str,
        time_range: Optional[TimeRange] = None,
    ) -> tuple[dict[str, float], float]:
        """
        Sum positive rejection counts per reason.

        Args:
            documents: Machine documents (filtered by mold here)
            mold: Selected mold identifier
            time_range: When given, only documents dated inside the window
                (inclusive) are counted

        Returns:
            (count per reason in first-seen order, grand total)
        """
        counts: dict[str, float] = {}
        grand_total = 0.0
        skipped = 0

        for document in filter_by_mold(documents, mold):
            if time_range is not None:
                timestamp = document.resolved_timestamp
                if timestamp is None or not time_range.contains(timestamp):
                    continue

            count = document.rejection_count
            if count is None or count <= 0:
                skipped += 1
                continue

            reason = (document.rejection_reason or "").strip() or UNKNOWN_REASON
            counts[reason] = counts.get(reason, 0.0) + count
            grand_total += count

        logger.debug(
            "rejection_reasons_tallied",
            mold=mold,
            reasons=len(counts),
            total_rejections=grand_total,
            skipped=skipped,
        )
        return counts, grand_total

    def rank(
        self,
        counts: dict[str, float],
        grand_total: float,
        limit: Optional[int] = None,
    ) -> list[RejectionReasonEntry]:
        """Sort tallied reasons by count, descending, and cut to ``limit``."""
        if grand_total <= 0:
            return []

        ordered = sorted(counts.items(), key=lambda item: item[1], reverse=True)
        if limit is not None:
            ordered = ordered[:limit]

        return [
            RejectionReasonEntry(
                reason=reason,
                count=count,
                percentage=round(count / grand_total * 100, 1),
            )
            for reason, count in ordered
        ]

    def top_reasons(
        self,
        documents: Iterable[TelemetryDocument],
        mold: str,
        limit: Optional[int] = 3,
        time_range: Optional[TimeRange] = None,
    ) -> list[RejectionReasonEntry]:
        """
        Top rejection reasons of a mold.

        Args:
            documents: Machine documents
            mold: Selected mold identifier
            limit: Number of reasons to keep (None keeps all)
            time_range: Optional inclusive window filter

        Returns:
            Ranked entries; empty when no document carries a positive count
        """
        counts, grand_total = self.tally(documents, mold, time_range)
        return self.rank(counts, grand_total, limit)
