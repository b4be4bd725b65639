# src/rt_estimation/growth/window_selection.py
"""
Sensitivity search over (start, end) windows for the exponential growth fit.

Starts are the first admissible day and the three days after it; ends are the
hard end date and the three days before it. Every pair with start < end is
fitted, and the best R-squared among windows of at least ``min_length`` days
wins. When no window is long enough, the longest windows are used instead.
"""

from dataclasses import dataclass
import datetime
import logging
from typing import List, Tuple

import numpy as np
import pandas as pd

from ..errors import DegenerateWindowError, InvalidParametersError, NoValidWindowError
from ..records import ONE_DAY, DailySeries, GrowthFitResult, TimeWindow
from . import exponential_growth

logger = logging.getLogger(__name__)

GRID_OFFSETS = 4


@dataclass(frozen=True)
class WindowSelection:
    best: GrowthFitResult
    candidates: Tuple[GrowthFitResult, ...]
    skipped: Tuple[Tuple[TimeWindow, str], ...]
    relaxed: bool
    series_start: datetime.date

    def to_frame(self) -> pd.DataFrame:
        """Every evaluated window, with the selected one flagged."""
        rows = []
        for res in self.candidates:
            row = res.to_row()
            row["selected"] = res is self.best
            row["status"] = "fitted"
            rows.append(row)
        for window, reason in self.skipped:
            rows.append({
                "region": self.best.region,
                "generation_time": self.best.label,
                "window_start": self.series_start + window.start * ONE_DAY,
                "window_end": self.series_start + window.end * ONE_DAY,
                "window_length": window.length,
                "selected": False,
                "status": reason,
            })
        return pd.DataFrame(rows)


def earliest_start(series: DailySeries, hard_end_index: int) -> int:
    """Day after the last zero count up to the hard end (0 if there is none)."""
    zeros = np.flatnonzero(series.counts[: hard_end_index + 1] == 0)
    if zeros.size == 0:
        return 0
    return int(zeros[-1]) + 1


def candidate_windows(start: int, hard_end_index: int, offsets: int = GRID_OFFSETS) -> List[TimeWindow]:
    starts = [start + i for i in range(offsets)]
    ends = [hard_end_index - i for i in reversed(range(offsets))]
    return [TimeWindow(s, e) for s in starts for e in ends if s < e and s >= 0]


def select_window(
    series: DailySeries,
    generation_time,
    hard_end: datetime.date,
    min_length: int = 7,
    confidence_level: float = 0.95,
) -> WindowSelection:
    """Pick the best-fitting exponential growth window for one region."""
    if min_length < 1:
        raise InvalidParametersError("min_length must be >= 1")

    hard_end_index = series.index_of(hard_end)
    if hard_end_index < 1:
        raise NoValidWindowError(
            f"{series.region}: hard end {hard_end} leaves no days to fit (series starts {series.start})"
        )
    if hard_end_index >= len(series):
        logger.debug("%s: hard end %s is after the last report, using %s",
                     series.region, hard_end, series.end)
        hard_end_index = len(series) - 1

    start = earliest_start(series, hard_end_index)
    windows = candidate_windows(start, hard_end_index)
    logger.debug("%s: %d candidate windows from start index %d", series.region, len(windows), start)

    fits = []
    skipped = []
    for window in windows:
        try:
            fits.append(exponential_growth.fit(series, window, generation_time, confidence_level))
        except DegenerateWindowError as exc:
            skipped.append((window, "degenerate"))
            logger.debug("%s", exc)

    if not fits:
        raise NoValidWindowError(
            f"{series.region}: no fittable window between {series.date_at(min(start, hard_end_index))} "
            f"and {series.date_at(hard_end_index)}"
        )

    retained = [f for f in fits if f.window.length >= min_length]
    relaxed = not retained
    if relaxed:
        # soft constraint: fall back to the longest windows available
        longest = max(f.window.length for f in fits)
        retained = [f for f in fits if f.window.length == longest]
        logger.info("%s: no window reaches %d days, using the longest (%d days)",
                    series.region, min_length, longest)

    # highest R-squared, then earliest start, then longest window
    best = max(retained, key=lambda f: (f.r_squared, -f.window.start, f.window.end))

    return WindowSelection(best=best, candidates=tuple(fits), skipped=tuple(skipped),
                           relaxed=relaxed, series_start=series.start)
