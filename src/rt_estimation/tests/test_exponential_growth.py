import datetime
import math

import numpy as np
import pytest
from scipy.stats import t as student_t

from rt_estimation.errors import DegenerateWindowError
from rt_estimation.growth.exponential_growth import fit, growth_rate_to_R
from rt_estimation.intervals.calculate_generation_weights import discretize
from rt_estimation.records import DailySeries, TimeWindow

START = datetime.date(2020, 2, 25)
GT_A = discretize(3.96, 4.75, label="A")
GT_B = discretize(4.70, 2.90, label="B")


def exponential_series(r0, days, initial=10.0):
    t = np.arange(days)
    return DailySeries("XX", START, np.round(initial * np.exp(r0 * t)))


@pytest.mark.parametrize("days", [15, 30, 45])
def test_recovers_growth_rate(days):
    r0 = 0.2
    series = exponential_series(r0, days)
    res = fit(series, TimeWindow(0, days - 1), GT_A)
    assert res.growth_rate == pytest.approx(r0, abs=0.01)
    assert res.r_squared > 0.999


def test_longer_windows_fit_better():
    series = exponential_series(0.15, 40, initial=3.0)
    errors = [abs(fit(series, TimeWindow(0, n - 1), GT_B).growth_rate - 0.15) for n in (8, 20, 40)]
    assert errors[2] <= errors[0]


def test_R_from_moment_generating_function():
    r = 0.2
    p = GT_A.probabilities
    k = np.arange(1, len(p) + 1)
    assert growth_rate_to_R(r, GT_A) == pytest.approx(1.0 / np.sum(p * np.exp(-r * k)))
    assert growth_rate_to_R(0.0, GT_A) == pytest.approx(1.0)
    assert growth_rate_to_R(-0.1, GT_B) < 1.0 < growth_rate_to_R(0.1, GT_B)


def test_confidence_intervals_bracket_estimates():
    rng = np.random.default_rng(7)
    counts = rng.poisson(5 * np.exp(0.12 * np.arange(20)))
    res = fit(DailySeries("XX", START, counts), TimeWindow(2, 19), GT_B)
    assert res.growth_rate_ci.lower < res.growth_rate < res.growth_rate_ci.upper
    assert res.reproduction_number_ci.lower < res.reproduction_number < res.reproduction_number_ci.upper
    assert res.growth_rate_se > 0
    assert res.label == "B"
    assert res.window_start == START + datetime.timedelta(days=2)
    assert res.window_end == START + datetime.timedelta(days=19)


def test_doubling_time():
    res = fit(exponential_series(0.2, 20), TimeWindow(0, 19), GT_A)
    assert res.doubling_time == pytest.approx(math.log(2) / res.growth_rate)

    falling = DailySeries("XX", START, [40, 30, 22, 15, 11, 8])
    res = fit(falling, TimeWindow(0, 5), GT_A)
    assert res.growth_rate < 0
    assert res.reproduction_number < 1
    assert res.doubling_time is None


def test_short_outbreak_window():
    series = DailySeries("XX", datetime.date(2020, 3, 1), [0, 0, 3, 5, 9, 15, 0, 0])
    res = fit(series, TimeWindow(2, 5), GT_A)
    assert res.growth_rate > 0
    assert res.reproduction_number > 1


@pytest.mark.parametrize("counts", [[5, 5, 5, 5], [0, 0, 3, 0], [0, 0, 0, 0]])
def test_degenerate_windows(counts):
    with pytest.raises(DegenerateWindowError):
        fit(DailySeries("XX", START, counts), TimeWindow(0, 3), GT_A)


def test_window_outside_series():
    with pytest.raises(ValueError):
        fit(DailySeries("XX", START, [1, 2, 3]), TimeWindow(1, 3), GT_A)


def test_interval_uses_student_t():
    series = DailySeries("XX", datetime.date(2020, 3, 1), [0, 0, 3, 5, 9, 15, 0, 0])
    res = fit(series, TimeWindow(2, 5), GT_A)
    half_width = (res.growth_rate_ci.upper - res.growth_rate_ci.lower) / 2
    assert half_width == pytest.approx(student_t.ppf(0.975, 2) * res.growth_rate_se)


def test_interval_coverage_on_short_windows():
    r0 = 0.3
    rng = np.random.default_rng(2020)
    covered = 0
    trials = 2000
    for _ in range(trials):
        counts = rng.poisson(20 * np.exp(r0 * np.arange(5)))
        res = fit(DailySeries("XX", START, counts), TimeWindow(0, 4), GT_B)
        covered += res.growth_rate_ci.lower <= r0 <= res.growth_rate_ci.upper
    assert covered / trials > 0.92


def test_two_day_window_has_no_interval():
    res = fit(DailySeries("XX", START, [4, 9]), TimeWindow(0, 1), GT_A)
    assert res.growth_rate > 0
    assert math.isnan(res.growth_rate_ci.lower) and math.isnan(res.growth_rate_ci.upper)
    assert math.isnan(res.reproduction_number_ci.lower)
    assert not math.isnan(res.reproduction_number)
