"""
Calendar date-range algebra shared by the vaccination validity rules.

Ranges are half-open ``[start, end)`` at day granularity, matching
PostgreSQL ``daterange`` semantics: an empty range is neither left of,
right of, nor overlapping any other range.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any

import numba
import numpy as np
import pandas as pd

VALIDITY_YEARS = 1
WAITING_PERIOD = timedelta(days=22)
CONVALESCENT_SLACK = timedelta(weeks=4)


# ---------------- Numba kernels ----------------
@numba.jit(nopython=True)
def range_relation(a_start, a_end, b_start, b_end):
    if a_start >= a_end or b_start >= b_end:
        return 0
    if a_end <= b_start:
        return 1
    if a_start >= b_end:
        return 2
    return 3


@numba.jit(nopython=True)
def range_relations(a_starts, a_ends, b_starts, b_ends):
    n = len(a_starts)
    relations = np.zeros(n, dtype=np.int8)
    for i in range(n):
        relations[i] = range_relation(a_starts[i], a_ends[i], b_starts[i], b_ends[i])
    return relations


# ---------------- Conversions ----------------
def as_date(value: Any) -> date | None:
    """Coerce a date-like value to ``datetime.date``; nulls become None."""
    if value is None or pd.isna(value):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return pd.Timestamp(value).date()


def normalize_dates(values: pd.Series) -> pd.Series:
    """Parse a column to naive ``datetime64[ns]`` truncated to the day.

    Timezone-aware timestamps are converted to UTC before truncation.
    """
    parsed = pd.to_datetime(values, utc=True, format="mixed")
    return parsed.dt.tz_localize(None).dt.normalize()


def to_day_numbers(values: pd.Series) -> np.ndarray:
    """Days since the Unix epoch, for feeding the numba kernels."""
    return values.to_numpy().astype("datetime64[D]").astype(np.int64)


def add_years(value: Any, years: int = VALIDITY_YEARS) -> Any:
    """Add calendar years to a date or a datetime Series.

    Feb 29 plus one year clamps to Feb 28 when the target year is not a
    leap year (``pandas.DateOffset`` behaviour, identical to PostgreSQL
    ``date + INTERVAL '1 year'``).
    """
    if isinstance(value, pd.Series):
        return value + pd.DateOffset(years=years)
    return (pd.Timestamp(value) + pd.DateOffset(years=years)).date()


# ---------------- Date range ----------------
@dataclass(frozen=True, order=True)
class DateRange:
    start: date
    end: date

    @classmethod
    def from_bounds(cls, start: Any, end: Any) -> "DateRange":
        return cls(as_date(start), as_date(end))

    @property
    def is_empty(self) -> bool:
        return self.start >= self.end

    def contains(self, day: date) -> bool:
        return self.start <= day < self.end


def merge_date_ranges(ranges: list[DateRange]) -> list[DateRange]:
    """Union overlapping or adjacent ranges; empty ranges are dropped."""
    merged: list[DateRange] = []
    for current in sorted(r for r in ranges if not r.is_empty):
        if merged and current.start <= merged[-1].end:
            last = merged[-1]
            merged[-1] = DateRange(last.start, max(last.end, current.end))
        else:
            merged.append(current)
    return merged
