# src/rt_estimation/growth/exponential_growth.py
"""
Exponential growth fit over a window of a daily series.

log(count + eps) = a + r t is fitted by least squares; r is converted to R
through the moment-generating function of the discretised generation time,
R = 1 / sum_k p_k exp(-r k).
"""

import logging
import math

import numpy as np
from scipy.stats import linregress, t as student_t

from ..errors import DegenerateWindowError
from ..records import ConfidenceInterval, DailySeries, GrowthFitResult, TimeWindow

logger = logging.getLogger(__name__)

# Offset keeping log(0) finite; admissible windows normally hold no zero
EPSILON = 1e-3


def growth_rate_to_R(r, generation_time):
    """R = 1 / M(-r) for the discrete generation-time distribution."""
    return 1.0 / generation_time.mgf(-r)


def doubling_time(r):
    return math.log(2) / r if r > 0 else None


def fit(
    series: DailySeries,
    window: TimeWindow,
    generation_time,
    confidence_level: float = 0.95,
    epsilon: float = EPSILON,
) -> GrowthFitResult:
    """Fit a growth rate on ``window`` and derive R with its confidence interval.

    Raises DegenerateWindowError when the window holds fewer than two distinct
    non-zero counts, since no growth rate can be fitted then. A two-day window
    leaves no residual degrees of freedom, so its intervals are NaN.
    """
    if window.start < 0 or window.end >= len(series):
        raise ValueError(f"Window {window} lies outside a series of length {len(series)}")

    counts = series.slice(window.start, window.end)
    nonzero = counts[counts > 0]
    if np.unique(nonzero).size < 2:
        raise DegenerateWindowError(
            f"{series.region}: window {series.date_at(window.start)}..{series.date_at(window.end)} "
            "has fewer than two distinct non-zero counts"
        )

    t = np.arange(window.length, dtype=float)
    y = np.log(counts.astype(float) + epsilon)
    res = linregress(t, y)

    r = float(res.slope)
    se = float(res.stderr)
    logger.debug("%s/%s: window %d..%d r=%.4f se=%.4f R2=%.4f", series.region,
                 generation_time.label, window.start, window.end, r, se, res.rvalue ** 2)
    # OLS slope: Student-t with n - 2 degrees of freedom, undefined for two points
    dof = window.length - 2
    q = student_t.ppf(1 - ((1 - confidence_level) / 2), dof) if dof > 0 else float("nan")
    r_ci = ConfidenceInterval(r - q * se, r + q * se)

    # R(r) is increasing in r, so the interval endpoints map directly
    R = growth_rate_to_R(r, generation_time)
    R_ci = ConfidenceInterval(
        growth_rate_to_R(r_ci.lower, generation_time),
        growth_rate_to_R(r_ci.upper, generation_time),
    )

    return GrowthFitResult(
        region=series.region,
        label=generation_time.label,
        window=window,
        window_start=series.date_at(window.start),
        window_end=series.date_at(window.end),
        growth_rate=r,
        growth_rate_se=se,
        growth_rate_ci=r_ci,
        reproduction_number=R,
        reproduction_number_ci=R_ci,
        r_squared=float(res.rvalue ** 2),
        doubling_time=doubling_time(r),
    )
