"""
Calendar Resolver — Reporting Windows on the Operational Cycle.

Turns a time period selector (current / previous / fixed quarter, custom
range) plus a reference year into a concrete window. The plant's day starts
at the operational cycle boundary (08:00 local), so every bound produced here
sits at that hour instead of midnight.

Quarter bounds are fixed: Q1 Jan 1 - Mar 31, Q2 Apr 1 - Jun 30,
Q3 Jul 1 - Sep 30, Q4 Oct 1 - Dec 31. The quarter end is the *last day* of
the quarter at the boundary hour.
"""

from datetime import date, datetime, tzinfo
from typing import Callable, Optional, Union

import structlog

from moldkpi.models.enums import TimePeriod
from moldkpi.models.telemetry import TimeRange

logger = structlog.get_logger()

# quarter -> (start month, end month, end day)
QUARTER_BOUNDS = {
    1: (1, 3, 31),
    2: (4, 6, 30),
    3: (7, 9, 30),
    4: (10, 12, 31),
}

FIXED_QUARTERS = {
    TimePeriod.Q1: 1,
    TimePeriod.Q2: 2,
    TimePeriod.Q3: 3,
    TimePeriod.Q4: 4,
}


def quarter_of(month: int) -> int:
    """Calendar quarter (1-4) of a month number."""
    return (month - 1) // 3 + 1


class CalendarResolver:
    """
    Resolves period selectors into ``TimeRange`` windows.

    Attributes:
        timezone: Plant timezone all bounds are expressed in
        boundary_hour: Hour of the operational cycle boundary
        clock: Callable returning the current aware instant

    Example:
        >>> resolver = CalendarResolver(ZoneInfo("Asia/Kolkata"))
        >>> window = resolver.resolve("q1", reference_year=2025)
        >>> window.start.isoformat()
        '2025-01-01T08:00:00+05:30'
    """

    def __init__(
        self,
        timezone: tzinfo,
        boundary_hour: int = 8,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        if not 0 <= boundary_hour <= 23:
            raise ValueError(f"Invalid boundary hour: {boundary_hour}. Must be 0-23.")
        self.timezone = timezone
        self.boundary_hour = boundary_hour
        self.clock = clock or (lambda: datetime.now(timezone))

    def now(self) -> datetime:
        """Current instant in plant time."""
        current = self.clock()
        if current.tzinfo is None:
            return current.replace(tzinfo=self.timezone)
        return current.astimezone(self.timezone)

    def at_boundary(self, day: date) -> datetime:
        """The cycle boundary instant of a calendar day."""
        return datetime(
            day.year, day.month, day.day, self.boundary_hour, tzinfo=self.timezone
        )

    def quarter_dates(self, quarter: int, year: int) -> tuple[datetime, datetime]:
        """
        Fixed start and end instants of a quarter.

        Args:
            quarter: Quarter number, 1-4
            year: Calendar year

        Returns:
            (start, end) at the cycle boundary

        Raises:
            ValueError: If quarter is not 1, 2, 3 or 4
        """
        if quarter not in QUARTER_BOUNDS:
            raise ValueError(f"Invalid quarter: {quarter}. Must be 1, 2, 3, or 4.")
        start_month, end_month, end_day = QUARTER_BOUNDS[quarter]
        return (
            self.at_boundary(date(year, start_month, 1)),
            self.at_boundary(date(year, end_month, end_day)),
        )

    def current_quarter(self) -> int:
        """Quarter the clock currently falls in."""
        return quarter_of(self.now().month)

    def resolve(
        self,
        period: Union[TimePeriod, str],
        reference_year: Optional[int] = None,
        custom_start: Optional[Union[date, datetime]] = None,
        custom_end: Optional[Union[date, datetime]] = None,
    ) -> TimeRange:
        """
        Resolve a period selector into a window.

        Args:
            period: Selector value (see ``TimePeriod``); unknown values fall
                back to the current quarter ending at the raw current instant,
                clamped to the quarter start when "now" precedes it
            reference_year: Year the quarter selectors apply to (default:
                the clock's year)
            custom_start: Start day for ``custom`` (default: Jan 1)
            custom_end: End day for ``custom`` (default: today)

        Returns:
            Resolved TimeRange

        Raises:
            ValueError: If a custom range ends before it starts
        """
        now = self.now()
        year = reference_year if reference_year is not None else now.year

        selector = self._parse_selector(period)

        if selector is TimePeriod.CURRENT_QUARTER:
            quarter = self.current_quarter()
            start, quarter_end = self.quarter_dates(quarter, year)
            if start <= now <= quarter_end:
                end = self.at_boundary(now.date())
            else:
                end = quarter_end
            window = TimeRange(start=start, end=end, label=f"Current Quarter (Q{quarter} {year})")

        elif selector is TimePeriod.LAST_QUARTER:
            quarter = self.current_quarter()
            if quarter == 1:
                prev_quarter, prev_year = 4, year - 1
            else:
                prev_quarter, prev_year = quarter - 1, year
            start, end = self.quarter_dates(prev_quarter, prev_year)
            window = TimeRange(
                start=start, end=end, label=f"Last Quarter (Q{prev_quarter} {prev_year})"
            )

        elif selector in FIXED_QUARTERS:
            quarter = FIXED_QUARTERS[selector]
            start, end = self.quarter_dates(quarter, year)
            window = TimeRange(start=start, end=end, label=f"Q{quarter} {year}")

        elif selector is TimePeriod.CUSTOM:
            start_day = self._as_plant_date(custom_start) if custom_start else date(year, 1, 1)
            end_day = self._as_plant_date(custom_end) if custom_end else now.date()
            window = TimeRange(
                start=self.at_boundary(start_day),
                end=self.at_boundary(end_day),
                label=f"Custom ({start_day.isoformat()} - {end_day.isoformat()})",
            )

        else:
            # Raw "now" end, not normalized to the boundary hour; never before start
            quarter = self.current_quarter()
            start, _ = self.quarter_dates(quarter, year)
            logger.warning(
                "unknown_time_period",
                period=getattr(period, "value", period),
                fallback=TimePeriod.CURRENT_QUARTER.value,
            )
            window = TimeRange(
                start=start,
                end=max(now, start),
                label=f"Current Quarter (Q{quarter} {year})",
            )

        logger.debug(
            "time_range_resolved",
            period=getattr(period, "value", period),
            start=window.start.isoformat(),
            end=window.end.isoformat(),
            label=window.label,
        )
        return window

    def _as_plant_date(self, value: Union[date, datetime]) -> date:
        if isinstance(value, datetime):
            if value.tzinfo is not None:
                value = value.astimezone(self.timezone)
            return value.date()
        return value

    @staticmethod
    def _parse_selector(period: Union[TimePeriod, str]) -> Optional[TimePeriod]:
        if isinstance(period, TimePeriod):
            return period
        try:
            return TimePeriod(str(period).strip().lower())
        except ValueError:
            return None
