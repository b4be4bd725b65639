import datetime

import numpy as np
import pytest

from rt_estimation.errors import DuplicateDateError, InvalidParametersError
from rt_estimation.records import CaseRecord
from rt_estimation.series.build_series import add_total_series, build_series

D0 = datetime.date(2020, 3, 1)


def day(n):
    return D0 + datetime.timedelta(days=n)


def make_records():
    return [
        CaseRecord("ZH", day(0), 2, 0),
        CaseRecord("ZH", day(3), 5, 1),
        CaseRecord("ZH", day(1), 1, 0),
        CaseRecord("GE", day(2), 7, 2),
        CaseRecord("GE", day(6), 3, 0),
    ]


def test_series_spans_first_to_last_date():
    series = build_series(make_records())
    assert list(series) == ["GE", "ZH"]

    zh = series["ZH"]
    assert zh.start == day(0)
    assert zh.end == day(3)
    assert len(zh) == (day(3) - day(0)).days + 1
    assert zh.counts.tolist() == [2, 1, 0, 5]

    ge = series["GE"]
    assert len(ge) == 5
    assert ge.counts.tolist() == [7, 0, 0, 0, 3]


def test_counts_are_preserved():
    records = make_records()
    series = build_series(records)
    for region, s in series.items():
        assert int(s.counts.sum()) == sum(r.cases for r in records if r.region == region)


def test_dates_step_by_one_day():
    s = build_series(make_records())["GE"]
    steps = {(b - a).days for a, b in zip(s.dates[:-1], s.dates[1:])}
    assert steps == {1}
    assert s.index_of(day(6)) == 4
    assert s.date_at(4) == day(6)


def test_single_record_gives_length_one():
    s = build_series([CaseRecord("TI", day(5), 4)])["TI"]
    assert len(s) == 1
    assert s.counts.tolist() == [4]


def test_duplicate_dates_raise():
    records = make_records() + [CaseRecord("ZH", day(1), 9, 0)]
    with pytest.raises(DuplicateDateError) as exc:
        build_series(records)
    assert exc.value.region == "ZH"
    assert exc.value.dates == [day(1)]


def test_death_series():
    s = build_series(make_records(), count="deaths")["ZH"]
    assert s.counts.tolist() == [0, 0, 0, 1]


def test_unknown_count_field():
    with pytest.raises(InvalidParametersError):
        build_series(make_records(), count="hospitalised")


def test_series_is_read_only():
    s = build_series(make_records())["ZH"]
    with pytest.raises(ValueError):
        s.counts[0] = 10


def test_add_total_series():
    series = add_total_series(build_series(make_records()), label="CH")
    total = series["CH"]
    assert total.start == day(0)
    assert total.end == day(6)
    assert total.counts.tolist() == [2, 1, 7, 5, 0, 0, 3]
    assert np.sum(total.counts) == sum(s.counts.sum() for k, s in series.items() if k != "CH")


def test_add_total_rejects_existing_label():
    with pytest.raises(InvalidParametersError):
        add_total_series(build_series(make_records()), label="ZH")


def test_to_frame():
    df = build_series(make_records())["ZH"].to_frame()
    assert list(df.columns) == ["region", "date", "count"]
    assert df["count"].tolist() == [2, 1, 0, 5]
