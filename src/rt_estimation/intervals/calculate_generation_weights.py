# src/rt_estimation/intervals/calculate_generation_weights.py
# This will compute discrete-time generation-time weights p_k, k = 1..L,
# from a continuous gamma distribution g(u) with a given mean and sd
from dataclasses import dataclass
from functools import lru_cache
import logging
import math

import numpy as np
from numpy.polynomial.legendre import leggauss
from scipy.stats import gamma

from ..errors import InvalidParametersError

logger = logging.getLogger(__name__)

# Literature-derived parameter sets (mean, sd) in days
GENERATION_TIME_A = (3.96, 4.75)
GENERATION_TIME_B = (4.70, 2.90)
DEFAULT_GENERATION_TIMES = {"A": GENERATION_TIME_A, "B": GENERATION_TIME_B}

# Truncation used when a distribution is shown next to others
DISPLAY_TRUNCATION = 40
# Default truncation keeps lags until this much continuous mass is covered
COVERAGE = 0.9999

SCHEMES = ("interval", "triangular")


def gamma_parameters(mean, sd):
    """Return (shape, rate) of the gamma distribution with this mean and sd."""
    if not (mean > 0) or not (sd > 0):
        raise InvalidParametersError(
            f"Generation-time mean and sd must be > 0 (got mean={mean}, sd={sd})"
        )
    shape = (mean / sd) ** 2
    rate = mean / sd ** 2
    return shape, rate


def default_truncation(mean, sd, coverage=COVERAGE):
    """Smallest lag L whose interval [L - 1/2, L + 1/2] reaches ``coverage`` of the mass."""
    shape, rate = gamma_parameters(mean, sd)
    upper = gamma(a=shape, scale=1.0 / rate).ppf(coverage)
    return max(1, int(math.ceil(upper - 0.5)))


# Use 64 leggauss nodes at most
@lru_cache(maxsize=64)
def compute_generation_weights(mean, sd, truncate, scheme="interval", nquad=32):
    """Calculates daily generation-time weights

    Discretises Gamma(shape=mean^2/sd^2, rate=mean/sd^2) onto lags 1..truncate.

    scheme="interval" integrates the density over the unit interval centred
    on each lag, p_k = G(k + 1/2) - G(k - 1/2).
    scheme="triangular" integrates against a triangular kernel on [k-1, k+1],
    p_k = int (1 - |u - k|) g(u) du, evaluated by Gauss-Legendre quadrature.

    Args:
        mean (float): mean generation time in days
        sd (float): standard deviation in days
        truncate (int): largest lag kept
    Returns:
        (w, captured) where w (nparray(truncate,)) sums to one and captured is
        the continuous mass the raw weights covered before renormalising
    Raises:
        InvalidParametersError
    """
    shape, rate = gamma_parameters(mean, sd)
    if truncate < 1:
        raise InvalidParametersError("truncate must be >= 1")
    if scheme not in SCHEMES:
        raise InvalidParametersError(f"Unknown discretisation scheme {scheme!r}")

    g = gamma(a=shape, scale=1.0 / rate)
    lags = np.arange(1, truncate + 1, dtype=float)

    if scheme == "interval":
        w = g.cdf(lags + 0.5) - g.cdf(lags - 0.5)
    else:
        # The integral is w_k = int_(k-1)^(k+1)[1-|u-k|]g(u)du; evaluate the
        # integrand at fixed Gauss-Legendre nodes on [k-1, k] and [k, k+1]
        # separately, the kernel has a kink at u = k
        nodes, weights = leggauss(nquad)
        half_nodes = 0.5 * nodes
        w = np.zeros(truncate)
        for k in range(1, truncate + 1):
            total_k = 0.0
            for midpoint in (k - 0.5, k + 0.5):
                u = half_nodes + midpoint
                tri = 1.0 - np.abs(u - k)
                # Remove any -ve numbers
                tri[tri < 0.0] = 0.0
                total_k += 0.5 * np.sum(weights * tri * g.pdf(u))
            w[k - 1] = total_k

    total = float(w.sum())
    if not total > 0:
        raise InvalidParametersError(
            f"Generation-time weights vanish on lags 1..{truncate} (mean={mean}, sd={sd})"
        )
    # Normalize w so that they sum to 1
    return w / total, total


@dataclass(frozen=True, eq=False)
class GenerationTimeDistribution:
    """Discretised generation-time distribution over lags 1..L.

    ``probabilities[k - 1]`` is the probability of lag k. Read-only once built,
    so one instance can be shared across regions and threads.
    """
    label: str
    mean_days: float
    sd_days: float
    probabilities: np.ndarray
    captured_mass: float
    scheme: str = "interval"

    def __post_init__(self):
        p = np.array(self.probabilities, dtype=float)
        p.setflags(write=False)
        object.__setattr__(self, "probabilities", p)

    def __len__(self):
        return int(self.probabilities.size)

    @property
    def support(self):
        return np.arange(1, len(self) + 1)

    @property
    def gamma_rate(self):
        return gamma_parameters(self.mean_days, self.sd_days)[1]

    def mean(self):
        return float(np.dot(self.support, self.probabilities))

    def mgf(self, x):
        """Moment-generating function sum_k p_k exp(x k)."""
        return float(np.dot(self.probabilities, np.exp(x * self.support)))

    def cdf(self, horizon):
        """Mass on lags 1..horizon (0 for horizon < 1, 1 beyond the support)."""
        if horizon < 1:
            return 0.0
        if horizon >= len(self):
            return 1.0
        return float(self.probabilities[: int(horizon)].sum())

    def padded(self, length):
        """Weights indexed by lag, w[0] = 0, zero-filled or cut to ``length`` entries."""
        w = np.zeros(length)
        n = min(length - 1, len(self))
        if n > 0:
            w[1:n + 1] = self.probabilities[:n]
        return w

    def truncated(self, truncate):
        """Re-discretise the same continuous distribution with another truncation."""
        return discretize(self.mean_days, self.sd_days, truncate=truncate,
                          label=self.label, scheme=self.scheme)


def discretize(mean, sd, truncate=None, label="", scheme="interval"):
    """Build a GenerationTimeDistribution from a gamma mean and sd."""
    if truncate is None:
        truncate = default_truncation(mean, sd)
    w, captured = compute_generation_weights(float(mean), float(sd), int(truncate), scheme)
    logger.debug("Discretised generation time %s (mean=%.2f, sd=%.2f, len=%d)",
                 label or "-", mean, sd, len(w))
    return GenerationTimeDistribution(
        label=label,
        mean_days=float(mean),
        sd_days=float(sd),
        probabilities=w,
        captured_mass=captured,
        scheme=scheme,
    )


def build_generation_times(parameter_sets=None, truncate=None):
    """Discretise every named (mean, sd) pair; defaults to assumptions A and B."""
    if parameter_sets is None:
        parameter_sets = DEFAULT_GENERATION_TIMES
    return {
        label: discretize(mean, sd, truncate=truncate, label=label)
        for label, (mean, sd) in parameter_sets.items()
    }
