"""
Period windows and date filtering for the CRM metrics engine.

Resolves the six comparison windows (today, thisWeek, thisMonth, last30Days,
thisQuarter, allTime) from a single reference ``now`` and filters records into
them. Every closed range is inclusive on both ends, with ``end`` set to the next
boundary minus one millisecond; timestamps are truncated to milliseconds when
parsed so adjacent ranges never overlap and never leave a gap.

Exports:
    DateRange, WindowPair, WINDOW_KEYS, parse_ts, get_field, resolve_windows,
    filter_by_date, month_windows, aggregate_by_window
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, TypeVar

from models.metrics_models import PeriodPair
from scripts.lib.logger import setup_logger

logger = setup_logger(__name__)

T = TypeVar("T")

ONE_MS = timedelta(milliseconds=1)
SUNDAY = 6

WINDOW_KEYS: Tuple[str, ...] = (
    "today",
    "thisWeek",
    "thisMonth",
    "last30Days",
    "thisQuarter",
    "allTime",
)

WINDOW_LABELS: Dict[str, Tuple[str, str]] = {
    "today": ("Today", "Yesterday"),
    "thisWeek": ("This Week", "Last Week"),
    "thisMonth": ("This Month", "Last Month"),
    "last30Days": ("Last 30 Days", "Previous 30 Days"),
    "thisQuarter": ("This Quarter", "Last Quarter"),
    "allTime": ("All Time", "N/A"),
}

_TS_FORMATS = (
    "%Y-%m-%dT%H:%M:%S.%fZ",
    "%Y-%m-%dT%H:%M:%SZ",
    "%Y-%m-%dT%H:%M:%S%z",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d",
)


# ---------------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DateRange:
    """An inclusive ``[start, end]`` range. ``None`` on either side is unbounded."""

    start: Optional[datetime] = None
    end: Optional[datetime] = None

    def contains(self, ts: Optional[datetime]) -> bool:
        if ts is None:
            return False
        if self.start is not None and ts < self.start:
            return False
        if self.end is not None and ts > self.end:
            return False
        return True


@dataclass(frozen=True)
class WindowPair:
    """Current and comparison range for one named window.

    ``previous`` is None for allTime, which has no prior period.
    """

    key: str
    current: DateRange
    previous: Optional[DateRange]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _truncate_ms(dt: datetime) -> datetime:
    return dt.replace(microsecond=(dt.microsecond // 1000) * 1000)


def _as_aware(dt: datetime) -> datetime:
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def parse_ts(val: Any) -> Optional[datetime]:
    """Parse a date/datetime value into a timezone-aware, millisecond-precision datetime.

    Naive values are taken as UTC. Returns None for empty or unparseable input.
    """
    if val is None or val == "":
        return None
    if isinstance(val, datetime):
        return _truncate_ms(_as_aware(val))
    if isinstance(val, date):
        return datetime(val.year, val.month, val.day, tzinfo=timezone.utc)
    if not isinstance(val, str):
        return None

    s = val.strip()
    for fmt in _TS_FORMATS:
        try:
            return _truncate_ms(_as_aware(datetime.strptime(s, fmt)))
        except ValueError:
            continue
    try:
        return _truncate_ms(_as_aware(datetime.fromisoformat(s.replace("Z", "+00:00"))))
    except ValueError:
        return None


def get_field(record: Any, name: str, default: Any = None) -> Any:
    """Read a field from a mapping or an object, whichever the record is."""
    if isinstance(record, Mapping):
        value = record.get(name, default)
    else:
        value = getattr(record, name, default)
    return default if value is None else value


def add_months(month_start: datetime, months: int) -> datetime:
    """Shift a first-of-month datetime by a number of calendar months."""
    years, month0 = divmod(month_start.month - 1 + months, 12)
    return month_start.replace(year=month_start.year + years, month=month0 + 1, day=1)


def _now_utc() -> datetime:
    """Current UTC time, timezone-aware."""
    return datetime.now(timezone.utc)


def normalize_now(now: Optional[datetime] = None) -> datetime:
    """Capture ``now`` once per call. Naive values are taken as UTC."""
    return _truncate_ms(_as_aware(now or _now_utc()))


# ---------------------------------------------------------------------------
# Window resolution
# ---------------------------------------------------------------------------

def start_of_day(now: datetime) -> datetime:
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def start_of_week(now: datetime, week_start: int = SUNDAY) -> datetime:
    today = start_of_day(now)
    return today - timedelta(days=(today.weekday() - week_start) % 7)


def start_of_month(now: datetime) -> datetime:
    return start_of_day(now).replace(day=1)


def start_of_quarter(now: datetime) -> datetime:
    return start_of_month(now).replace(month=((now.month - 1) // 3) * 3 + 1)


def resolve_windows(now: datetime, week_start: int = SUNDAY) -> Dict[str, WindowPair]:
    """Compute the six comparison windows for ``now``.

    Args:
        now: Reference time. All boundaries are computed in its timezone.
        week_start: Python weekday number the week starts on (Sunday = 6).

    Returns:
        Mapping of window key -> WindowPair, in WINDOW_KEYS order.
    """
    now = normalize_now(now)

    today = start_of_day(now)
    tomorrow = today + timedelta(days=1)
    yesterday = today - timedelta(days=1)

    week_start_dt = start_of_week(now, week_start)
    last_week_start = week_start_dt - timedelta(days=7)

    month_start = start_of_month(now)
    last_month_start = add_months(month_start, -1)

    last_30_start = now - timedelta(days=30)
    prev_30_start = last_30_start - timedelta(days=30)

    quarter_start = start_of_quarter(now)
    last_quarter_start = add_months(quarter_start, -3)

    return {
        "today": WindowPair(
            "today",
            DateRange(today, tomorrow - ONE_MS),
            DateRange(yesterday, today - ONE_MS),
        ),
        "thisWeek": WindowPair(
            "thisWeek",
            DateRange(week_start_dt),
            DateRange(last_week_start, week_start_dt - ONE_MS),
        ),
        "thisMonth": WindowPair(
            "thisMonth",
            DateRange(month_start),
            DateRange(last_month_start, month_start - ONE_MS),
        ),
        "last30Days": WindowPair(
            "last30Days",
            DateRange(last_30_start),
            DateRange(prev_30_start, last_30_start - ONE_MS),
        ),
        "thisQuarter": WindowPair(
            "thisQuarter",
            DateRange(quarter_start),
            DateRange(last_quarter_start, quarter_start - ONE_MS),
        ),
        "allTime": WindowPair("allTime", DateRange(), None),
    }


def month_windows(now: datetime, months: int = 6) -> List[Tuple[str, DateRange]]:
    """The calendar months ending at the current month, oldest first.

    Each entry is ``(label, range)`` with labels like ``"Oct 2026"``.
    """
    current = start_of_month(normalize_now(now))
    out: List[Tuple[str, DateRange]] = []
    for offset in range(months - 1, -1, -1):
        start = add_months(current, -offset)
        end = add_months(start, 1) - ONE_MS
        out.append((start.strftime("%b %Y"), DateRange(start, end)))
    return out


# ---------------------------------------------------------------------------
# Filtering
# ---------------------------------------------------------------------------

def filter_by_date(
    records: Sequence[T],
    start: Optional[datetime],
    end: Optional[datetime] = None,
    date_field: str = "date",
) -> List[T]:
    """Return the records whose ``date_field`` falls within ``[start, end]``.

    ``end=None`` leaves the range open. Records with a missing or unparseable
    date are skipped.
    """
    window = DateRange(start, end)
    selected: List[T] = []
    skipped = 0
    for record in records:
        ts = parse_ts(get_field(record, date_field))
        if ts is None:
            skipped += 1
            continue
        if window.contains(ts):
            selected.append(record)
    if skipped:
        logger.debug("Skipped %d record(s) with no usable '%s'", skipped, date_field)
    return selected


def filter_by_range(records: Sequence[T], date_range: DateRange, date_field: str = "date") -> List[T]:
    return filter_by_date(records, date_range.start, date_range.end, date_field)


# ---------------------------------------------------------------------------
# Windowed aggregation
# ---------------------------------------------------------------------------

def aggregate_by_window(
    sources: Mapping[str, Tuple[Sequence[Any], str]],
    reducer: Callable[..., T],
    now: datetime,
    empty: Callable[[], T],
    week_start: int = SUNDAY,
) -> Dict[str, PeriodPair]:
    """Run a reducer over every comparison window.

    Args:
        sources: ``name -> (records, date_field)``. Each collection is filtered
            on its own date field and passed to the reducer as a keyword
            argument of the same name.
        reducer: Folds the filtered collections into a metrics object.
        now: Reference time, shared by every window.
        empty: Builds the zero-valued result used for allTime's previous period.
        week_start: Python weekday number the week starts on.

    Returns:
        Mapping of window key -> PeriodPair(current, previous).
    """
    windows = resolve_windows(now, week_start)
    result: Dict[str, PeriodPair] = {}

    for key, pair in windows.items():
        if pair.previous is None:
            current = reducer(**{name: list(records) for name, (records, _) in sources.items()})
            result[key] = PeriodPair(current=current, previous=empty())
            continue

        current_sets = {
            name: filter_by_range(records, pair.current, field)
            for name, (records, field) in sources.items()
        }
        previous_sets = {
            name: filter_by_range(records, pair.previous, field)
            for name, (records, field) in sources.items()
        }
        logger.debug(
            "Window %s: current=%s previous=%s",
            key,
            {name: len(items) for name, items in current_sets.items()},
            {name: len(items) for name, items in previous_sets.items()},
        )
        result[key] = PeriodPair(current=reducer(**current_sets), previous=reducer(**previous_sets))

    return result
