"""
KPI router — Mold KPI views for the analyzer dashboard.

Wired to:
- CalendarResolver for period selectors
- KPIEngine for the four KPI views and the combined dashboard

Store failures never surface here: the engine answers with synthetic data
and flags it. Only an invalid window (custom range ending before it starts)
is rejected, with 422.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from moldkpi.engine import CalendarResolver, KPIEngine, get_calendar, get_engine
from moldkpi.models.telemetry import TimeRange
from moldkpi.utils.logging import bind_selection, get_logger

logger = get_logger(__name__)
router = APIRouter()


class Selection:
    """Machine / mold / window selection shared by every KPI endpoint."""

    def __init__(self, machine: str, mold: str, time_range: TimeRange):
        self.machine = machine
        self.mold = mold
        self.time_range = time_range


async def get_selection(
    machine: str = Query(..., min_length=1, description="Machine (device) identifier"),
    mold: str = Query(..., min_length=1, description="Mold identifier"),
    period: str = Query("current-quarter", description="Period selector"),
    year: Optional[int] = Query(None, ge=1970, le=9999, description="Reference year"),
    start_date: Optional[date] = Query(None, description="Custom range start"),
    end_date: Optional[date] = Query(None, description="Custom range end"),
    calendar: CalendarResolver = Depends(get_calendar),
) -> Selection:
    """Resolve query parameters into a selection; 422 on an invalid window."""
    bind_selection(machine, mold, period)
    try:
        time_range = calendar.resolve(
            period,
            reference_year=year,
            custom_start=start_date,
            custom_end=end_date,
        )
    except ValueError as e:
        logger.warning("invalid_time_range", error=str(e))
        raise HTTPException(status_code=422, detail=str(e))
    return Selection(machine, mold, time_range)


@router.get("/summary")
async def get_kpi_summary(
    selection: Selection = Depends(get_selection),
    engine: KPIEngine = Depends(get_engine),
):
    """
    KPI snapshot: totals, post-event defect rate, downtime, MHI and top reasons.
    """
    logger.info("kpi_summary")

    result = await engine.compute_kpis(selection.machine, selection.mold, selection.time_range)
    return {"success": True, "data": result.model_dump(mode="json")}


@router.get("/monthly")
async def get_monthly_series(
    selection: Selection = Depends(get_selection),
    engine: KPIEngine = Depends(get_engine),
):
    """Monthly defect-rate series, one entry per month of the window."""
    logger.info("kpi_monthly")

    series = await engine.compute_monthly_series(
        selection.machine, selection.mold, selection.time_range
    )
    return {
        "success": True,
        "data": {
            "time_range": selection.time_range.model_dump(mode="json"),
            "months": [entry.model_dump(mode="json") for entry in series],
        },
    }


@router.get("/rejections")
async def get_rejection_breakdown(
    selection: Selection = Depends(get_selection),
    engine: KPIEngine = Depends(get_engine),
):
    """Rejected units by reason, ranked."""
    logger.info("kpi_rejections")

    breakdown = await engine.compute_rejection_breakdown(
        selection.machine, selection.mold, selection.time_range
    )
    return {
        "success": True,
        "data": {
            "time_range": selection.time_range.model_dump(mode="json"),
            "total_rejections": sum(entry.count for entry in breakdown),
            "reasons": [
                {**entry.model_dump(mode="json"), "percentage_label": entry.percentage_label}
                for entry in breakdown
            ],
        },
    }


@router.get("/production-vs-target")
async def get_production_vs_target(
    selection: Selection = Depends(get_selection),
    engine: KPIEngine = Depends(get_engine),
):
    """Monthly actual versus target production."""
    logger.info("kpi_production_vs_target")

    entries = await engine.compute_production_vs_target(
        selection.machine, selection.mold, selection.time_range
    )
    return {
        "success": True,
        "data": {
            "time_range": selection.time_range.model_dump(mode="json"),
            "months": [entry.model_dump(mode="json") for entry in entries],
        },
    }


@router.get("/dashboard")
async def get_dashboard(
    selection: Selection = Depends(get_selection),
    engine: KPIEngine = Depends(get_engine),
):
    """All four views from a single telemetry fetch."""
    logger.info("kpi_dashboard")

    snapshot = await engine.compute_dashboard(
        selection.machine, selection.mold, selection.time_range
    )
    return {"success": True, "data": snapshot.model_dump(mode="json")}
