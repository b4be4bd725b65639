import datetime

import numpy as np
import pandas as pd
import pytest

from rt_estimation.errors import DuplicateDateError, InvalidParametersError
from rt_estimation.pipeline import PipelineConfig, run_from_csv, run_pipeline, write_results
from rt_estimation.records import CaseRecord
from rt_estimation.series.build_series import build_series
from rt_estimation.timevarying.sliding_window import UncertainSIConfig

START = datetime.date(2020, 2, 25)
HARD_END = datetime.date(2020, 3, 15)
DAYS = 30


def make_records():
    recs = []
    for i in range(DAYS):
        d = START + datetime.timedelta(days=i)
        recs.append(CaseRecord("ZH", d, int(round(2 * np.exp(0.15 * i))) if i >= 3 else 0))
        recs.append(CaseRecord("GE", d, int(round(1.5 * np.exp(0.12 * i)))))
        # flat series: no growth window can be fitted
        recs.append(CaseRecord("TI", d, 4))
    return recs


def make_config(**kwargs):
    kwargs.setdefault("hard_end_date", HARD_END)
    kwargs.setdefault("uncertainty", UncertainSIConfig(n1=3, n2=3, seed=1))
    return PipelineConfig(**kwargs)


def test_three_result_tables():
    res = run_pipeline(make_records(), make_config())

    assert set(res.growth["region"]) == {"GE", "ZH"}
    assert len(res.growth) == 4
    assert set(res.growth["generation_time"]) == {"A", "B"}
    assert (res.growth["window_end"] <= HARD_END).all()
    assert (res.growth["window_length"] >= 7).all()
    assert (res.growth["R"] > 1).all()

    assert set(res.renewal["region"]) == {"GE", "TI", "ZH"}
    assert set(res.renewal["method"]) == {"renewal_td", "renewal_td_corrected"}
    assert set(res.sliding["region"]) == {"GE", "TI", "ZH"}
    assert set(res.sliding["method"]) == {"sliding_window"}


def test_region_failures_are_isolated():
    res = run_pipeline(make_records(), make_config())
    assert list(res.failures["region"]) == ["TI", "TI"]
    assert set(res.failures["error"]) == {"NoValidWindowError"}
    assert set(res.failures["stage"]) == {"growth"}


def test_reporting_lag_trims_recent_dates():
    res = run_pipeline(make_records(), make_config(reporting_lag=3))
    cutoff = START + datetime.timedelta(days=DAYS - 1 - 3)
    assert res.renewal["date"].max() == cutoff
    assert res.sliding["date"].max() <= cutoff

    res0 = run_pipeline(make_records(), make_config(reporting_lag=0))
    plain = res0.renewal[res0.renewal["method"] == "renewal_td"]
    assert plain["date"].max() == START + datetime.timedelta(days=DAYS - 1)


def test_uncorrected_only():
    res = run_pipeline(make_records(), make_config(correct_renewal=False))
    assert set(res.renewal["method"]) == {"renewal_td"}


def test_sensitivity_grid():
    res = run_pipeline(make_records(), make_config())
    selected = res.sensitivity[res.sensitivity["selected"] == True]  # noqa: E712
    assert len(selected) == len(res.growth)
    assert len(res.sensitivity) > len(res.growth)


def test_threads_give_same_tables():
    serial = run_pipeline(make_records(), make_config(workers=1))
    threaded = run_pipeline(make_records(), make_config(workers=3))
    for name, df in serial.tables().items():
        pd.testing.assert_frame_equal(df, threaded.tables()[name])


def test_total_region():
    res = run_pipeline(make_records(), make_config(add_total=True, total_label="CH"))
    assert "CH" in set(res.growth["region"])
    assert "CH" in set(res.sliding["region"])


def test_custom_generation_times():
    res = run_pipeline(make_records(), make_config(generation_times={"short": (2.0, 1.0)}))
    assert set(res.growth["generation_time"]) == {"short"}
    assert set(res.renewal["generation_time"]) == {"short"}


def test_growth_needs_hard_end():
    with pytest.raises(InvalidParametersError):
        run_pipeline(make_records(), PipelineConfig())
    # time-varying estimates alone do not
    res = run_pipeline(make_records(), PipelineConfig(run_growth=False,
                                                      uncertainty=UncertainSIConfig(n1=2, n2=2)))
    assert res.growth.empty
    assert not res.renewal.empty


def test_invalid_generation_time_is_fatal():
    with pytest.raises(InvalidParametersError):
        run_pipeline(make_records(), make_config(generation_times={"bad": (0.0, 1.0)}))


def test_duplicate_dates_are_fatal():
    records = make_records() + [CaseRecord("ZH", START, 3)]
    with pytest.raises(DuplicateDateError):
        run_pipeline(records, make_config())


def test_series_contract():
    series = build_series(make_records())
    assert all(len(s) == DAYS for s in series.values())


def test_csv_round_trip(tmp_path):
    df = pd.DataFrame([
        {"region": r.region, "date": r.date.isoformat(), "cases": r.cases, "deaths": 0}
        for r in make_records()
    ])
    path = tmp_path / "cases.csv"
    df.to_csv(path, index=False)

    res = run_from_csv(path, make_config())
    paths = write_results(res, tmp_path / "out")
    assert set(paths) == {"growth", "sensitivity", "renewal", "sliding", "failures"}
    for p in paths.values():
        assert p.exists()
    growth = pd.read_csv(paths["growth"])
    assert len(growth) == 4
