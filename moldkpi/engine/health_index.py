"""
Mold Health Index — Composite Rejection and Downtime Score.

    rejection_penalty      = rejections / units * 100
    expected_runtime_hours = cycle_time_seconds * units / 3600
    downtime_penalty       = downtime_hours / expected_runtime_hours * 100
    MHI                    = max(0, 100 - (rejection_penalty + downtime_penalty))

Neither penalty is capped on its own; only the combined score is floored at
zero. A cycle time of 0 (unknown) zeroes the downtime penalty.
"""

from collections.abc import Iterable

import structlog

from moldkpi.models.telemetry import TelemetryDocument

logger = structlog.get_logger()

SECONDS_PER_HOUR = 3600


def rejection_penalty(total_units: float, total_rejections: float) -> float:
    """Rejected share of production, in percent."""
    if total_units > 0:
        return total_rejections / total_units * 100
    return 0.0


def expected_runtime_hours(cycle_time_seconds: float, total_units: float) -> float:
    """Runtime the produced units should have taken at the nominal cycle time."""
    if cycle_time_seconds > 0 and total_units > 0:
        return cycle_time_seconds * total_units / SECONDS_PER_HOUR
    return 0.0


def downtime_penalty(total_downtime_hours: float, expected_hours: float) -> float:
    """Downtime relative to expected runtime, in percent."""
    if expected_hours > 0:
        return total_downtime_hours / expected_hours * 100
    return 0.0


def compute_mold_health_index(
    total_units: float,
    total_rejections: float,
    total_downtime_hours: float,
    cycle_time_seconds: float,
) -> float:
    """
    Compute the Mold Health Index.

    Args:
        total_units: Units produced in the window
        total_rejections: Rejected units in the window
        total_downtime_hours: Downtime in the window, in hours
        cycle_time_seconds: Nominal cycle time (0 = unknown)

    Returns:
        Score in [0, 100], rounded to 2 decimals

    Example:
        >>> compute_mold_health_index(1000, 20, 1.0, 36)
        88.0
    """
    rejection = rejection_penalty(total_units, total_rejections)
    expected = expected_runtime_hours(cycle_time_seconds, total_units)
    downtime = downtime_penalty(total_downtime_hours, expected)

    index = round(max(0.0, 100 - (rejection + downtime)), 2)

    logger.debug(
        "mold_health_index_computed",
        rejection_penalty=round(rejection, 2),
        downtime_penalty=round(downtime, 2),
        expected_runtime_hours=round(expected, 2),
        mold_health_index=index,
    )
    return index


def total_downtime_hours(documents: Iterable[TelemetryDocument]) -> float:
    """
    Total downtime of mold-filtered documents in hours.

    Only positive downtime values count. Rounded to 2 decimals.
    """
    seconds = sum(
        d.downtime_seconds
        for d in documents
        if d.downtime_seconds is not None and d.downtime_seconds > 0
    )
    return round(seconds / SECONDS_PER_HOUR, 2)
