#!/usr/bin/env python3
# src/rt_estimation/runner.py — command line entry point

import argparse
import datetime
import logging
import re
import time
from typing import Dict, List, Optional, Tuple

from .intervals.calculate_generation_weights import DEFAULT_GENERATION_TIMES
from .pipeline import PipelineConfig, run_from_csv, write_results
from .timevarying.sliding_window import UncertainSIConfig


# Parser for dates like 2020-03-13
def parse_date(s: str) -> datetime.date:
    try:
        return datetime.date.fromisoformat(s)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an ISO date (YYYY-MM-DD): {s!r}")


# Parser for generation times like A=3.96,4.75
def parse_generation_time(item: str) -> Tuple[str, Tuple[float, float]]:
    m = re.fullmatch(r"\s*([^=]+?)\s*=\s*([0-9.eE+-]+)\s*[,;\s]\s*([0-9.eE+-]+)\s*", item)
    if m is None:
        raise argparse.ArgumentTypeError(f"expected NAME=MEAN,SD, got {item!r}")
    return m.group(1), (float(m.group(2)), float(m.group(3)))


def generation_times_from(items: Optional[List[Tuple[str, Tuple[float, float]]]]) -> Dict[str, Tuple[float, float]]:
    if not items:
        return dict(DEFAULT_GENERATION_TIMES)
    return dict(items)


def add_common_arguments(p: argparse.ArgumentParser):
    p.add_argument("--csv", required=True, metavar="PATH",
                   help="Case records CSV with columns region,date,cases[,deaths,region_name]")
    p.add_argument("--out", default="results", metavar="DIR",
                   help="Output directory for the result CSVs (default: results)")
    p.add_argument("--gt", action="append", type=parse_generation_time, metavar="NAME=MEAN,SD",
                   help="Generation-time assumption, repeatable (default: A=3.96,4.75 and B=4.70,2.90)")
    p.add_argument("--count", choices=("cases", "deaths"), default="cases",
                   help="Which count to build series from (default: cases)")
    p.add_argument("--add-total", action="store_true",
                   help="Also estimate for the sum of all regions")
    p.add_argument("--unknown-threshold", type=int, default=5, metavar="N",
                   help="Maximum number of unknown-location records to drop (default: 5)")
    p.add_argument("--confidence", type=float, default=0.95,
                   help="Confidence level of the intervals (default: 0.95)")
    p.add_argument("--workers", type=int, default=1,
                   help="Worker threads for region estimates (default: 1)")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")


def add_growth_arguments(p: argparse.ArgumentParser, required: bool):
    p.add_argument("--hard-end", type=parse_date, required=required, metavar="DATE",
                   help="Last date unaffected by interventions (YYYY-MM-DD)")
    p.add_argument("--min-window", type=int, default=7, metavar="DAYS",
                   help="Minimum growth window length in days (default: 7)")


def add_timevarying_arguments(p: argparse.ArgumentParser):
    p.add_argument("--reporting-lag", type=int, default=3, metavar="DAYS",
                   help="Days trimmed from the end of time-varying estimates (default: 3)")
    p.add_argument("--no-correct", action="store_true",
                   help="Skip the right-censoring corrected renewal estimate")
    p.add_argument("--n1", type=int, default=20, help="Sampled serial-interval means (default: 20)")
    p.add_argument("--n2", type=int, default=20, help="Sampled serial-interval sds (default: 20)")
    p.add_argument("--std-mean-si", type=float, default=1.0,
                   help="Prior std of the serial-interval mean (default: 1.0)")
    p.add_argument("--std-std-si", type=float, default=0.5,
                   help="Prior std of the serial-interval sd (default: 0.5)")
    p.add_argument("--min-cases", type=int, default=12,
                   help="Cases needed before sliding-window estimates are trusted (default: 12)")
    p.add_argument("--seed", type=int, default=42, help="RNG seed for serial-interval sampling (default: 42)")


def build_config(args) -> PipelineConfig:
    run_growth = args.cmd in ("all", "growth")
    run_timevarying = args.cmd in ("all", "timevarying")
    cfg = PipelineConfig(
        hard_end_date=getattr(args, "hard_end", None),
        min_window_length=getattr(args, "min_window", 7),
        generation_times=generation_times_from(args.gt),
        unknown_location_threshold=args.unknown_threshold,
        confidence_level=args.confidence,
        count_column=args.count,
        add_total=args.add_total,
        workers=args.workers,
        run_growth=run_growth,
        run_timevarying=run_timevarying,
    )
    if run_timevarying:
        cfg.reporting_lag = args.reporting_lag
        cfg.correct_renewal = not args.no_correct
        cfg.uncertainty = UncertainSIConfig(
            std_mean_si=args.std_mean_si,
            std_std_si=args.std_std_si,
            n1=args.n1,
            n2=args.n2,
            min_cases=args.min_cases,
            confidence_level=args.confidence,
            seed=args.seed,
        )
    return cfg


def main(argv=None):
    p = argparse.ArgumentParser(description="Estimate effective reproduction numbers from daily case reports")
    sub = p.add_subparsers(dest="cmd", required=True)

    # ---------- all ----------
    all_p = sub.add_parser("all", help="Growth fit and both time-varying estimators")
    add_common_arguments(all_p)
    add_growth_arguments(all_p, required=True)
    add_timevarying_arguments(all_p)

    # ---------- growth ----------
    growth_p = sub.add_parser("growth", help="Exponential growth fit over the best window")
    add_common_arguments(growth_p)
    add_growth_arguments(growth_p, required=True)

    # ---------- timevarying ----------
    tv_p = sub.add_parser("timevarying", help="Renewal and sliding-window estimates")
    add_common_arguments(tv_p)
    add_timevarying_arguments(tv_p)

    args = p.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    t0 = time.perf_counter()

    cfg = build_config(args)
    results = run_from_csv(args.csv, cfg)
    paths = write_results(results, args.out)
    for name, path in paths.items():
        print(f"{name} ({len(results.tables()[name])} rows) ->", path)

    print(f"Done in {time.perf_counter() - t0:.2f}s")


if __name__ == "__main__":
    main()
