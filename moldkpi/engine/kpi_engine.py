"""
KPI Engine — Public Surface of the Mold KPI Computations.

Each public operation fetches the machine's telemetry for the resolved
window, derives its view, and falls back to degraded-mode synthesis when the
store fails or the selection yields no usable data. Store failures never
reach the caller; only contract violations (bad static arguments) raise.

Pipeline per request:
    fetch -> normalize -> {filter by mold -> aggregate; post-event scan;
    downtime; ranking; cycle-time lookup -> MHI}
"""

import asyncio
from typing import Optional

import structlog

from moldkpi.config import EngineConfig
from moldkpi.connectors.store_client import (
    DocumentStore,
    StoreError,
    format_store_timestamp,
)
from moldkpi.engine.cycle_time import CycleTimeLookup
from moldkpi.engine.degraded_mode import DegradedModeSynthesizer
from moldkpi.engine.health_index import compute_mold_health_index, total_downtime_hours
from moldkpi.engine.monthly_aggregator import MonthlyAggregator
from moldkpi.engine.normalize import filter_by_mold, is_valid_count, normalize_documents
from moldkpi.engine.post_event import PostEventDetector, StatusClassifier
from moldkpi.engine.production_target import ProductionTargetAggregator
from moldkpi.engine.rejection_ranker import RejectionReasonRanker
from moldkpi.models.enums import KPIView
from moldkpi.models.kpis import (
    DashboardSnapshot,
    KPIResult,
    MonthlyEntry,
    ProductionTargetEntry,
    RejectionReasonEntry,
)
from moldkpi.models.telemetry import TelemetryDocument, TimeRange

logger = structlog.get_logger()


class KPIEngine:
    """
    Computes KPI views for a machine / mold / window selection.

    Attributes:
        store: Telemetry document store
        config: Engine configuration
        synthesizer: Degraded-mode synthesizer
        detector: Post-event defect-rate detector
        cycle_times: Cycle-time lookup against the mold mapping device

    Example:
        >>> engine = KPIEngine(store, EngineConfig())
        >>> window = CalendarResolver(engine.timezone).resolve("q1", 2025)
        >>> result = await engine.compute_kpis("M1", "TRAY-A", window)
        >>> result.is_synthetic
        False
    """

    def __init__(
        self,
        store: DocumentStore,
        config: Optional[EngineConfig] = None,
        synthesizer: Optional[DegradedModeSynthesizer] = None,
        classifier: Optional[StatusClassifier] = None,
        cycle_times: Optional[CycleTimeLookup] = None,
    ):
        self.store = store
        self.config = config or EngineConfig()
        self.timezone = self.config.timezone
        self.synthesizer = synthesizer or DegradedModeSynthesizer(timezone=self.timezone)
        self.detector = PostEventDetector(classifier)
        self.cycle_times = cycle_times or CycleTimeLookup(store, self.config)
        self.monthly = MonthlyAggregator(self.timezone)
        self.ranker = RejectionReasonRanker()
        self.production_target = ProductionTargetAggregator(self.timezone)

    # ------------------------------------------------------------------
    # Fetch
    # ------------------------------------------------------------------

    async def _fetch(self, machine: str, time_range: TimeRange) -> Optional[list[TelemetryDocument]]:
        """Fetch and normalize a machine's documents; None on store failure."""
        try:
            rows = await asyncio.wait_for(
                self.store.fetch(
                    machine,
                    time_range.start,
                    time_range.end,
                    limit=self.config.fetch_limit,
                ),
                timeout=self.config.request_timeout_seconds,
            )
        except (StoreError, asyncio.TimeoutError) as e:
            logger.warning(
                "store_fetch_failed",
                machine=machine,
                window=time_range.label,
                error=str(e) or type(e).__name__,
            )
            return None

        documents = normalize_documents(rows, self.config.fields, self.timezone)
        logger.debug(
            "telemetry_documents_loaded",
            machine=machine,
            rows=len(rows),
            documents=len(documents),
        )
        return documents

    def format_range(self, time_range: TimeRange) -> str:
        """Window echo in the store's timestamp format."""
        start = format_store_timestamp(time_range.start, self.timezone)
        end = format_store_timestamp(time_range.end, self.timezone)
        return f"{start} - {end}"

    @staticmethod
    def _degraded(view: KPIView, reason: str, **context) -> None:
        logger.warning("degraded_mode_engaged", view=view.value, reason=reason, **context)

    # ------------------------------------------------------------------
    # Derivations over a fetched document set
    # ------------------------------------------------------------------

    def _kpis_from(
        self,
        documents: Optional[list[TelemetryDocument]],
        machine: str,
        mold: str,
        time_range: TimeRange,
    ) -> tuple[Optional[KPIResult], str]:
        """
        Derive KPIs from real documents.

        Returns:
            (result, "") on success, or (None, reason) when degraded mode
            must take over. The MHI assumes an unknown cycle time until
            ``_with_cycle_time`` fills it in.
        """
        if documents is None:
            return None, "store_failure"
        mold_documents = filter_by_mold(documents, mold)
        if not mold_documents:
            return None, "no_mold_documents"

        total_units = sum(
            d.units_produced for d in mold_documents if is_valid_count(d.units_produced)
        )
        if total_units == 0:
            return None, "zero_units"
        total_rejection = sum(
            d.rejection_count for d in mold_documents if is_valid_count(d.rejection_count)
        )

        downtime_hours = total_downtime_hours(mold_documents)
        result = KPIResult(
            total_units_produced=total_units,
            total_rejection=total_rejection,
            post_event_defect_rate=self.detector.defect_rate(documents, mold),
            total_downtime_hours=downtime_hours,
            mold_health_index=compute_mold_health_index(
                total_units, total_rejection, downtime_hours, 0.0
            ),
            top_rejection_reasons=self.ranker.top_reasons(
                documents, mold, limit=self.config.top_reasons_limit
            ),
            document_count=len(mold_documents),
            date_range=self.format_range(time_range),
            time_range=time_range,
            machine=machine,
            mold=mold,
        )
        return result, ""

    @staticmethod
    def _with_cycle_time(result: KPIResult, cycle_time: float) -> KPIResult:
        """Recompute the MHI of a real snapshot with the mold's cycle time."""
        return result.model_copy(
            update={
                "cycle_time_seconds": cycle_time,
                "mold_health_index": compute_mold_health_index(
                    result.total_units_produced,
                    result.total_rejection,
                    result.total_downtime_hours,
                    cycle_time,
                ),
            }
        )

    def _monthly_from(
        self,
        documents: Optional[list[TelemetryDocument]],
        mold: str,
        time_range: TimeRange,
    ) -> tuple[Optional[list[MonthlyEntry]], str]:
        if documents is None:
            return None, "store_failure"
        mold_documents = filter_by_mold(documents, mold)
        if not mold_documents:
            return None, "no_mold_documents"

        series = self.monthly.aggregate(mold_documents, time_range)
        if sum(entry.units_produced for entry in series) == 0:
            return None, "zero_units"
        return series, ""

    def _breakdown_from(
        self,
        documents: Optional[list[TelemetryDocument]],
        mold: str,
        time_range: TimeRange,
    ) -> tuple[Optional[list[RejectionReasonEntry]], str]:
        """
        Full rejection ranking inside the window.

        With mold documents present but no positive rejection in the window,
        the real rejection total is split across the placeholder reason mix.
        """
        if documents is None:
            return None, "store_failure"
        mold_documents = filter_by_mold(documents, mold)
        if not mold_documents:
            return None, "no_mold_documents"

        breakdown = self.ranker.top_reasons(mold_documents, mold, limit=None, time_range=time_range)
        if breakdown:
            return breakdown, ""

        total_rejection = sum(
            d.rejection_count for d in mold_documents if is_valid_count(d.rejection_count)
        )
        self._degraded(
            KPIView.REJECTION_BREAKDOWN,
            "no_rejections_in_window",
            total_rejection=total_rejection,
        )
        return self.synthesizer.reason_distribution(total_rejection), ""

    def _production_target_from(
        self,
        documents: Optional[list[TelemetryDocument]],
        mold: str,
        time_range: TimeRange,
    ) -> tuple[Optional[list[ProductionTargetEntry]], str]:
        if documents is None:
            return None, "store_failure"
        mold_documents = filter_by_mold(documents, mold)
        if not mold_documents:
            return None, "no_mold_documents"

        entries = self.production_target.aggregate(mold_documents, time_range)
        if all(entry.production == 0 and entry.target == 0 for entry in entries):
            return None, "zero_production_and_target"
        return entries, ""

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def compute_kpis(self, machine: str, mold: str, time_range: TimeRange) -> KPIResult:
        """
        KPI snapshot of a mold on a machine.

        The cycle-time lookup runs concurrently with the telemetry fetch and
        is cancelled if the result is not needed.

        Args:
            machine: Device identifier
            mold: Mold identifier
            time_range: Resolved window

        Returns:
            KPIResult (``is_synthetic`` set when degraded)
        """
        lookup = asyncio.create_task(self.cycle_times.lookup(mold))
        try:
            documents = await self._fetch(machine, time_range)
            result, reason = self._kpis_from(documents, machine, mold, time_range)
            if result is None:
                self._degraded(KPIView.KPIS, reason, machine=machine, mold=mold)
                return self.synthesizer.kpi_result(
                    machine, mold, time_range, date_range=self.format_range(time_range)
                )

            result = self._with_cycle_time(result, await lookup)
        finally:
            if not lookup.done():
                lookup.cancel()

        logger.info(
            "kpis_computed",
            machine=machine,
            mold=mold,
            total_units=result.total_units_produced,
            total_rejection=result.total_rejection,
            mold_health_index=result.mold_health_index,
            document_count=result.document_count,
        )
        return result

    async def compute_monthly_series(
        self, machine: str, mold: str, time_range: TimeRange
    ) -> list[MonthlyEntry]:
        """Gap-free monthly defect-rate series."""
        documents = await self._fetch(machine, time_range)
        series, reason = self._monthly_from(documents, mold, time_range)
        if series is None:
            self._degraded(KPIView.MONTHLY_SERIES, reason, machine=machine, mold=mold)
            return self.synthesizer.monthly_series(time_range)

        logger.info("monthly_series_computed", machine=machine, mold=mold, months=len(series))
        return series

    async def compute_rejection_breakdown(
        self, machine: str, mold: str, time_range: TimeRange
    ) -> list[RejectionReasonEntry]:
        """
        Every rejection reason of the mold in the window, ranked.

        On store failure or when no document matches the mold, the defects
        of a synthetic monthly series are split across the placeholder
        reason mix.
        """
        documents = await self._fetch(machine, time_range)
        breakdown, reason = self._breakdown_from(documents, mold, time_range)
        if breakdown is None:
            self._degraded(KPIView.REJECTION_BREAKDOWN, reason, machine=machine, mold=mold)
            series = self.synthesizer.monthly_series(time_range)
            return self.synthesizer.reason_distribution(
                sum(entry.defect_units for entry in series)
            )

        logger.info(
            "rejection_breakdown_computed", machine=machine, mold=mold, reasons=len(breakdown)
        )
        return breakdown

    async def compute_production_vs_target(
        self, machine: str, mold: str, time_range: TimeRange
    ) -> list[ProductionTargetEntry]:
        """Monthly actual versus target production."""
        documents = await self._fetch(machine, time_range)
        entries, reason = self._production_target_from(documents, mold, time_range)
        if entries is None:
            self._degraded(KPIView.PRODUCTION_VS_TARGET, reason, machine=machine, mold=mold)
            return self.synthesizer.production_vs_target(time_range)

        logger.info(
            "production_vs_target_computed", machine=machine, mold=mold, months=len(entries)
        )
        return entries

    async def compute_dashboard(
        self, machine: str, mold: str, time_range: TimeRange
    ) -> DashboardSnapshot:
        """
        All four views from a single telemetry fetch.

        Degraded views share one synthetic monthly series so that KPI totals,
        the monthly chart and the rejection split reconcile.
        """
        lookup = asyncio.create_task(self.cycle_times.lookup(mold))
        try:
            documents = await self._fetch(machine, time_range)

            synthetic: list[KPIView] = []
            shared_series: Optional[list[MonthlyEntry]] = None

            def synthetic_series() -> list[MonthlyEntry]:
                nonlocal shared_series
                if shared_series is None:
                    shared_series = self.synthesizer.monthly_series(time_range)
                return shared_series

            series, reason = self._monthly_from(documents, mold, time_range)
            if series is None:
                self._degraded(KPIView.MONTHLY_SERIES, reason, machine=machine, mold=mold)
                synthetic.append(KPIView.MONTHLY_SERIES)
                series = synthetic_series()

            kpis, reason = self._kpis_from(documents, machine, mold, time_range)
            if kpis is None:
                self._degraded(KPIView.KPIS, reason, machine=machine, mold=mold)
                synthetic.append(KPIView.KPIS)
                kpis = self.synthesizer.kpi_result(
                    machine,
                    mold,
                    time_range,
                    series=synthetic_series(),
                    date_range=self.format_range(time_range),
                )
            else:
                kpis = self._with_cycle_time(kpis, await lookup)

            breakdown, reason = self._breakdown_from(documents, mold, time_range)
            if breakdown is None:
                self._degraded(KPIView.REJECTION_BREAKDOWN, reason, machine=machine, mold=mold)
                synthetic.append(KPIView.REJECTION_BREAKDOWN)
                breakdown = self.synthesizer.reason_distribution(
                    sum(entry.defect_units for entry in synthetic_series())
                )

            production, reason = self._production_target_from(documents, mold, time_range)
            if production is None:
                self._degraded(KPIView.PRODUCTION_VS_TARGET, reason, machine=machine, mold=mold)
                synthetic.append(KPIView.PRODUCTION_VS_TARGET)
                production = self.synthesizer.production_vs_target(time_range)
        finally:
            if not lookup.done():
                lookup.cancel()

        logger.info(
            "dashboard_computed",
            machine=machine,
            mold=mold,
            synthetic_views=[view.value for view in synthetic],
        )
        return DashboardSnapshot(
            kpis=kpis,
            monthly_series=series,
            rejection_breakdown=breakdown,
            production_vs_target=production,
            synthetic_views=synthetic,
        )
