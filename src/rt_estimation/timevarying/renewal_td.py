# src/rt_estimation/timevarying/renewal_td.py
"""
Time-dependent reproduction number by the Wallinga-Teunis renewal method.

For cases reported on day d, R(d) is the expected number of later cases they
infected: every case on day i > d is shared among all potential infectors in
proportion to N(s) w(i - s), so

    R(d) = sum_{i > d} N(i) w(i - d) / Lambda(i),   Lambda(i) = sum_{s < i} N(s) w(i - s).

Cases near the end of the series have not yet had time to infect anyone who
is already reported. The corrected estimate divides R(d) by the mass of the
generation-time distribution inside the observed horizon.
"""

import logging
from typing import List

import numpy as np
from scipy.stats import norm

from ..records import DailySeries, TimeVaryingREstimate

logger = logging.getLogger(__name__)

METHOD = "renewal_td"
METHOD_CORRECTED = "renewal_td_corrected"


def lag_matrix(n, generation_time):
    """W[i, s] = w(i - s) for i > s, 0 otherwise."""
    idx = np.arange(n)
    lags = np.subtract.outer(idx, idx)
    w = generation_time.padded(n)
    return np.where(lags > 0, w[np.clip(lags, 0, n - 1)], 0.0)


def wallinga_teunis(counts, generation_time):
    """Uncorrected R(d) for every day and its approximate variance.

    The variance treats every daily count as Poisson and propagates it through
    the numerators N(i) and the denominators Lambda(i) separately.
    """
    N = np.asarray(counts, dtype=float)
    W = lag_matrix(N.size, generation_time)

    lam = W @ N
    with np.errstate(divide="ignore"):
        inv = np.where(lam > 0, 1.0 / lam, 0.0)

    # share of a day-i case attributed to each day-d case
    Q = W * inv[:, None]
    R = Q.T @ N

    var_num = (Q ** 2).T @ N
    var_lam = (W ** 2) @ N
    D = W * (N * inv ** 2)[:, None]
    var_den = (D ** 2).T @ var_lam
    return R, var_num + var_den


def first_reported_index(generation_time):
    """Offset of the shortest lag carrying any mass."""
    positive = np.flatnonzero(generation_time.probabilities > 0)
    return int(positive[0]) + 1 if positive.size else 1


def estimate(
    series: DailySeries,
    generation_time,
    correct: bool = False,
    confidence_level: float = 0.95,
) -> List[TimeVaryingREstimate]:
    """Renewal-equation estimates, one per day from the first reportable date.

    With ``correct`` the method label is ``renewal_td_corrected`` and the last
    day (no observed horizon at all) is omitted.
    """
    n = len(series)
    R, var = wallinga_teunis(series.counts, generation_time)
    sd = np.sqrt(var)
    q = norm.ppf(1 - ((1 - confidence_level) / 2))
    method = METHOD_CORRECTED if correct else METHOD

    out = []
    for idx in range(first_reported_index(generation_time), n):
        r_t = R[idx]
        sd_t = sd[idx]
        if correct:
            observed = generation_time.cdf(n - 1 - idx)
            if observed <= 0:
                continue
            r_t = r_t / observed
            sd_t = sd_t / observed
        out.append(TimeVaryingREstimate(
            region=series.region,
            date=series.date_at(idx),
            label=generation_time.label,
            method=method,
            R=float(r_t),
            lower=float(max(0.0, r_t - q * sd_t)),
            upper=float(r_t + q * sd_t),
        ))

    logger.debug("%s/%s: %d %s estimates", series.region, generation_time.label, len(out), method)
    return out
