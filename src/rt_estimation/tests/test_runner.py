import argparse

import pandas as pd
import pytest

from rt_estimation.runner import main, parse_generation_time


def write_cases(path):
    rows = []
    for i in range(25):
        date = pd.Timestamp("2020-03-01") + pd.Timedelta(days=i)
        rows.append({"region": "BE", "date": date.strftime("%Y-%m-%d"), "cases": 2 + i * i // 4, "deaths": 0})
    pd.DataFrame(rows).to_csv(path, index=False)


def test_parse_generation_time():
    assert parse_generation_time("A=3.96,4.75") == ("A", (3.96, 4.75))
    assert parse_generation_time(" long = 7, 2.5 ") == ("long", (7.0, 2.5))
    with pytest.raises(argparse.ArgumentTypeError):
        parse_generation_time("A:3.96")


def test_all_command_writes_tables(tmp_path, capsys):
    csv = tmp_path / "cases.csv"
    write_cases(csv)
    out = tmp_path / "results"
    main(["all", "--csv", str(csv), "--hard-end", "2020-03-20", "--out", str(out),
          "--n1", "2", "--n2", "2", "--gt", "A=3.96,4.75"])
    for name in ("growth", "sensitivity", "renewal", "sliding", "failures"):
        assert (out / f"{name}.csv").exists()
    growth = pd.read_csv(out / "growth.csv")
    assert list(growth["region"]) == ["BE"]
    assert list(growth["generation_time"]) == ["A"]
    assert "Done in" in capsys.readouterr().out


def test_timevarying_command_needs_no_hard_end(tmp_path):
    csv = tmp_path / "cases.csv"
    write_cases(csv)
    out = tmp_path / "results"
    main(["timevarying", "--csv", str(csv), "--out", str(out), "--n1", "2", "--n2", "2", "--no-correct"])
    renewal = pd.read_csv(out / "renewal.csv")
    assert set(renewal["method"]) == {"renewal_td"}
    assert pd.read_csv(out / "growth.csv").empty


def test_growth_command_requires_hard_end(tmp_path):
    csv = tmp_path / "cases.csv"
    write_cases(csv)
    with pytest.raises(SystemExit):
        main(["growth", "--csv", str(csv)])
