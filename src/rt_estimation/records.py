# src/rt_estimation/records.py
"""Typed value records passed between pipeline stages."""

import datetime
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
import pandas as pd

from .errors import EarlyEstimateWarning

ONE_DAY = datetime.timedelta(days=1)


@dataclass(frozen=True)
class CaseRecord:
    region: str
    date: datetime.date
    cases: int
    deaths: int = 0
    region_name: Optional[str] = None


@dataclass(frozen=True, eq=False)
class DailySeries:
    """Gap-free daily counts for one region.

    ``counts[i]`` is the count reported on ``start + i days``. The array is
    made read-only on construction.
    """
    region: str
    start: datetime.date
    counts: np.ndarray

    def __post_init__(self):
        arr = np.array(self.counts, dtype=np.int64)
        if arr.ndim != 1 or arr.size == 0:
            raise ValueError("counts must be a non-empty 1D sequence")
        arr.setflags(write=False)
        object.__setattr__(self, "counts", arr)

    def __len__(self) -> int:
        return int(self.counts.size)

    @property
    def end(self) -> datetime.date:
        return self.date_at(len(self) - 1)

    @property
    def dates(self) -> Tuple[datetime.date, ...]:
        return tuple(self.start + i * ONE_DAY for i in range(len(self)))

    def date_at(self, index: int) -> datetime.date:
        return self.start + int(index) * ONE_DAY

    def index_of(self, date: datetime.date) -> int:
        """Offset of ``date`` from the series start (may fall outside the series)."""
        return (date - self.start).days

    def slice(self, start: int, end: int) -> np.ndarray:
        """Counts for the inclusive index range [start, end]."""
        return self.counts[start:end + 1]

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({
            "region": self.region,
            "date": pd.to_datetime(list(self.dates)),
            "count": self.counts,
        })


@dataclass(frozen=True)
class TimeWindow:
    start: int
    end: int

    def __post_init__(self):
        if self.end < self.start:
            raise ValueError(f"window end {self.end} precedes start {self.start}")

    @property
    def length(self) -> int:
        """Number of days covered, both ends included."""
        return self.end - self.start + 1


@dataclass(frozen=True)
class ConfidenceInterval:
    lower: float
    upper: float


@dataclass(frozen=True)
class GrowthFitResult:
    region: str
    label: str
    window: TimeWindow
    window_start: datetime.date
    window_end: datetime.date
    growth_rate: float
    growth_rate_se: float
    growth_rate_ci: ConfidenceInterval
    reproduction_number: float
    reproduction_number_ci: ConfidenceInterval
    r_squared: float
    doubling_time: Optional[float]

    def to_row(self) -> dict:
        return {
            "region": self.region,
            "generation_time": self.label,
            "R": self.reproduction_number,
            "R_lower": self.reproduction_number_ci.lower,
            "R_upper": self.reproduction_number_ci.upper,
            "growth_rate": self.growth_rate,
            "growth_rate_se": self.growth_rate_se,
            "growth_rate_lower": self.growth_rate_ci.lower,
            "growth_rate_upper": self.growth_rate_ci.upper,
            "r_squared": self.r_squared,
            "doubling_time": self.doubling_time,
            "window_start": self.window_start,
            "window_end": self.window_end,
            "window_length": self.window.length,
        }


@dataclass(frozen=True)
class TimeVaryingREstimate:
    region: str
    date: datetime.date
    label: str
    method: str
    R: float
    lower: float
    upper: float
    warning: Optional[EarlyEstimateWarning] = None

    @property
    def low_confidence(self) -> bool:
        return self.warning is not None

    def to_row(self) -> dict:
        return {
            "region": self.region,
            "date": self.date,
            "generation_time": self.label,
            "method": self.method,
            "R": self.R,
            "R_lower": self.lower,
            "R_upper": self.upper,
            "low_confidence": self.low_confidence,
        }
