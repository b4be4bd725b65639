# src/rt_estimation/timevarying/sliding_window.py
"""
Bayesian sliding-window estimate of R with an uncertain serial interval.

Within a window of ``window`` days ending on day t, incidence is Poisson with
rate R Lambda(s), Lambda(s) = sum_k N(s - k) p_k. A Gamma(a, scale=b) prior on
R gives the Gamma posterior

    shape = a + sum_window N(s),   rate = 1/b + sum_window Lambda(s).

Serial-interval uncertainty: n1 means and n2 standard deviations are drawn
from truncated normal priors, and every (mean, sd) pair is discretised. The
reported posterior is the equally weighted mixture of the n1 x n2 Gamma
posteriors: its mean is the average of the component means, and its interval
bounds are quantiles of the mixture itself.
"""

from dataclasses import dataclass
import logging
from typing import Iterator, List, Optional, Tuple

import numpy as np
from numpy.random import default_rng
from scipy.optimize import brentq
from scipy.stats import gamma, truncnorm

from ..errors import EarlyEstimateWarning, InvalidParametersError
from ..intervals.calculate_generation_weights import discretize, gamma_parameters
from ..records import DailySeries, TimeVaryingREstimate

logger = logging.getLogger(__name__)

METHOD = "sliding_window"


@dataclass(frozen=True)
class UncertainSIConfig:
    std_mean_si: float = 1.0
    min_mean_si: Optional[float] = None
    max_mean_si: Optional[float] = None
    std_std_si: float = 0.5
    min_std_si: Optional[float] = None
    max_std_si: Optional[float] = None
    n1: int = 20
    n2: int = 20
    window: int = 7
    report_offset: int = 4
    min_cases: int = 12
    mean_prior: float = 5.0
    std_prior: float = 5.0
    confidence_level: float = 0.95
    seed: Optional[int] = None

    def mean_bounds(self, mean_si) -> Tuple[float, float]:
        lo = self.min_mean_si if self.min_mean_si is not None else mean_si - 2 * self.std_mean_si
        hi = self.max_mean_si if self.max_mean_si is not None else mean_si + 2 * self.std_mean_si
        return max(lo, 1e-3), hi

    def std_bounds(self, sd_si) -> Tuple[float, float]:
        lo = self.min_std_si if self.min_std_si is not None else sd_si - 2 * self.std_std_si
        hi = self.max_std_si if self.max_std_si is not None else sd_si + 2 * self.std_std_si
        return max(lo, 1e-3), hi

    def prior(self) -> Tuple[float, float]:
        """Gamma prior on R as (shape, scale)."""
        return (self.mean_prior / self.std_prior) ** 2, self.std_prior ** 2 / self.mean_prior

    def validate(self, mean_si, sd_si):
        gamma_parameters(mean_si, sd_si)
        if self.n1 < 1 or self.n2 < 1:
            raise InvalidParametersError("n1 and n2 must be >= 1")
        if self.window < 1:
            raise InvalidParametersError("window must be >= 1")
        if not (0 <= self.report_offset < self.window):
            raise InvalidParametersError("report_offset must lie inside the window")
        if self.mean_prior <= 0 or self.std_prior <= 0:
            raise InvalidParametersError("Prior mean and std of R must be > 0")
        if self.std_mean_si < 0 or self.std_std_si < 0:
            raise InvalidParametersError("Serial-interval prior stds must be >= 0")
        for (lo, hi), centre, name in ((self.mean_bounds(mean_si), mean_si, "mean"),
                                       (self.std_bounds(sd_si), sd_si, "std")):
            if not lo <= centre <= hi:
                raise InvalidParametersError(
                    f"Serial-interval {name} {centre} lies outside its bounds [{lo}, {hi}]"
                )


def sample_truncated_normal(centre, std, bounds, size, rng):
    lo, hi = bounds
    if std == 0:
        return np.full(size, float(centre))
    a = (lo - centre) / std
    b = (hi - centre) / std
    return truncnorm.rvs(a, b, loc=centre, scale=std, size=size, random_state=rng)


def sampled_distributions(mean_si, sd_si, config: UncertainSIConfig, rng) -> Iterator:
    """Lazily discretise every (mean, sd) pair of the resampled cross product."""
    means = sample_truncated_normal(mean_si, config.std_mean_si, config.mean_bounds(mean_si), config.n1, rng)
    sds = sample_truncated_normal(sd_si, config.std_std_si, config.std_bounds(sd_si), config.n2, rng)
    for m in means:
        for s in sds:
            yield discretize(m, s)


def total_infectiousness(counts, generation_time):
    """Lambda(t) = sum_{k >= 1} N(t - k) p_k."""
    N = np.asarray(counts, dtype=float)
    w = generation_time.padded(N.size)
    return np.convolve(N, w)[: N.size]


def window_sums(values, window):
    """Sum over the trailing ``window`` days, for every day from index ``window`` on."""
    c = np.concatenate(([0.0], np.cumsum(values, dtype=float)))
    ends = np.arange(window, len(values))
    return c[ends + 1] - c[ends + 1 - window]


def posterior_parameters(counts, generation_time, config: UncertainSIConfig):
    """Gamma posterior (shape, scale) of R for every window end."""
    a, b = config.prior()
    shape = a + window_sums(counts, config.window)
    rate = 1.0 / b + window_sums(total_infectiousness(counts, generation_time), config.window)
    return shape, 1.0 / rate


def mixture_quantile(q, shapes, scales):
    """Quantile ``q`` of the equally weighted mixture of Gamma(shapes, scales).

    The smallest and largest component quantiles bracket the root of the
    averaged CDF.
    """
    component = gamma.ppf(q, shapes, scale=scales)
    lo, hi = float(component.min()), float(component.max())
    if hi - lo <= 1e-12 * max(hi, 1.0):
        return lo
    return brentq(lambda x: gamma.cdf(x, shapes, scale=scales).mean() - q, lo, hi, xtol=1e-10)


def estimate(
    series: DailySeries,
    mean_si: float,
    sd_si: float,
    config: Optional[UncertainSIConfig] = None,
    label: str = "",
) -> List[TimeVaryingREstimate]:
    """Sliding-window estimates averaged over the resampled serial intervals.

    Window ends run from the eighth day (for a 7-day window) to the last day;
    each estimate is dated ``report_offset`` days before its window end.
    Estimates whose window ends before ``min_cases`` cases have accumulated
    carry an EarlyEstimateWarning.
    """
    if config is None:
        config = UncertainSIConfig()
    config.validate(mean_si, sd_si)

    counts = series.counts
    n = len(series)
    if n <= config.window:
        logger.debug("%s: series of %d days is too short for a %d-day window",
                     series.region, n, config.window)
        return []

    rng = default_rng(config.seed)
    mean_acc = None
    shapes, scales = [], []
    for k, gt in enumerate(sampled_distributions(mean_si, sd_si, config, rng), start=1):
        shape_k, scale_k = posterior_parameters(counts, gt, config)
        shapes.append(shape_k)
        scales.append(scale_k)
        mean_k = shape_k * scale_k
        # running mean over the sampled distributions
        mean_acc = mean_k if mean_acc is None else mean_acc + (mean_k - mean_acc) / k

    # rows are sampled distributions, columns are window ends
    shapes = np.vstack(shapes)
    scales = np.vstack(scales)
    tail = (1 - config.confidence_level) / 2

    cumulative = np.cumsum(counts)
    ends = np.arange(config.window, n)
    out = []
    flagged = 0
    for j, end in enumerate(ends):
        warning = None
        if cumulative[end] < config.min_cases:
            warning = EarlyEstimateWarning(cumulative[end], config.min_cases)
            flagged += 1
        out.append(TimeVaryingREstimate(
            region=series.region,
            date=series.date_at(end - config.report_offset),
            label=label,
            method=METHOD,
            R=float(mean_acc[j]),
            lower=float(mixture_quantile(tail, shapes[:, j], scales[:, j])),
            upper=float(mixture_quantile(1 - tail, shapes[:, j], scales[:, j])),
            warning=warning,
        ))

    if flagged:
        logger.warning("%s/%s: %d sliding-window estimates use fewer than %d cases",
                       series.region, label or "-", flagged, config.min_cases)
    return out
