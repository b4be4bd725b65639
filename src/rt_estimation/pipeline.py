# src/rt_estimation/pipeline.py
"""
End-to-end estimation: case records -> daily series -> three result tables.

Each (region, generation-time assumption) pair is independent, so pairs can be
handed to a thread pool; the shared generation-time distributions are only read.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
import datetime
import logging
import pathlib
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import pandas as pd

from .errors import InvalidParametersError, RegionEstimationError
from .growth.window_selection import select_window
from .intervals.calculate_generation_weights import DEFAULT_GENERATION_TIMES, build_generation_times
from .records import CaseRecord, DailySeries, ONE_DAY, TimeVaryingREstimate
from .series.build_series import add_total_series, build_series
from .series.ingest import UNKNOWN_LOCATION_THRESHOLD, load_case_records
from .timevarying import renewal_td, sliding_window
from .timevarying.sliding_window import UncertainSIConfig

# Start logger
logger = logging.getLogger(__name__)

GROWTH_COLUMNS = [
    "region", "generation_time", "R", "R_lower", "R_upper", "growth_rate", "growth_rate_se",
    "growth_rate_lower", "growth_rate_upper", "r_squared", "doubling_time",
    "window_start", "window_end", "window_length",
]
SENSITIVITY_COLUMNS = GROWTH_COLUMNS + ["selected", "status"]
TIMEVARYING_COLUMNS = ["region", "date", "generation_time", "method", "R", "R_lower", "R_upper", "low_confidence"]
FAILURE_COLUMNS = ["region", "generation_time", "stage", "error", "message"]


@dataclass
class PipelineConfig:
    hard_end_date: Optional[datetime.date] = None
    min_window_length: int = 7
    generation_times: Dict[str, Tuple[float, float]] = field(
        default_factory=lambda: dict(DEFAULT_GENERATION_TIMES)
    )
    generation_time_truncation: Optional[int] = None
    reporting_lag: int = 3
    unknown_location_threshold: int = UNKNOWN_LOCATION_THRESHOLD
    confidence_level: float = 0.95
    correct_renewal: bool = True
    uncertainty: UncertainSIConfig = field(default_factory=UncertainSIConfig)
    count_column: str = "cases"
    add_total: bool = False
    total_label: str = "total"
    workers: int = 1
    run_growth: bool = True
    run_timevarying: bool = True

    def validate(self):
        if self.run_growth and self.hard_end_date is None:
            raise InvalidParametersError("hard_end_date is required for the exponential growth fit")
        if self.min_window_length < 1:
            raise InvalidParametersError("min_window_length must be >= 1")
        if self.reporting_lag < 0:
            raise InvalidParametersError("reporting_lag must be >= 0")
        if not 0 < self.confidence_level < 1:
            raise InvalidParametersError("confidence_level must lie in (0, 1)")
        if not self.generation_times:
            raise InvalidParametersError("At least one generation-time assumption is needed")
        if self.workers < 1:
            raise InvalidParametersError("workers must be >= 1")


@dataclass
class RegionResult:
    growth: List[dict] = field(default_factory=list)
    sensitivity: List[pd.DataFrame] = field(default_factory=list)
    renewal: List[TimeVaryingREstimate] = field(default_factory=list)
    sliding: List[TimeVaryingREstimate] = field(default_factory=list)
    failures: List[dict] = field(default_factory=list)


@dataclass
class PipelineResults:
    growth: pd.DataFrame
    sensitivity: pd.DataFrame
    renewal: pd.DataFrame
    sliding: pd.DataFrame
    failures: pd.DataFrame

    def tables(self) -> Dict[str, pd.DataFrame]:
        return {
            "growth": self.growth,
            "sensitivity": self.sensitivity,
            "renewal": self.renewal,
            "sliding": self.sliding,
            "failures": self.failures,
        }


def trim_reporting_lag(estimates: Sequence[TimeVaryingREstimate], series: DailySeries, lag: int):
    """Drop estimates dated within the last ``lag`` days of the series."""
    cutoff = series.end - lag * ONE_DAY
    return [e for e in estimates if e.date <= cutoff]


def estimate_region(series: DailySeries, generation_time, config: PipelineConfig) -> RegionResult:
    """All three estimators for one region under one generation-time assumption."""
    result = RegionResult()
    label = generation_time.label

    if config.run_growth:
        try:
            selection = select_window(
                series,
                generation_time,
                hard_end=config.hard_end_date,
                min_length=config.min_window_length,
                confidence_level=config.confidence_level,
            )
        except RegionEstimationError as exc:
            logger.warning("%s/%s excluded from the growth fit: %s", series.region, label, exc)
            result.failures.append({
                "region": series.region,
                "generation_time": label,
                "stage": "growth",
                "error": type(exc).__name__,
                "message": str(exc),
            })
        else:
            result.growth.append(selection.best.to_row())
            result.sensitivity.append(selection.to_frame())

    if config.run_timevarying:
        renewal = renewal_td.estimate(series, generation_time, correct=False,
                                      confidence_level=config.confidence_level)
        if config.correct_renewal:
            renewal += renewal_td.estimate(series, generation_time, correct=True,
                                           confidence_level=config.confidence_level)
        sliding = sliding_window.estimate(series, generation_time.mean_days, generation_time.sd_days,
                                          config.uncertainty, label=label)
        result.renewal = trim_reporting_lag(renewal, series, config.reporting_lag)
        result.sliding = trim_reporting_lag(sliding, series, config.reporting_lag)

    return result


def estimates_frame(estimates: Sequence[TimeVaryingREstimate]) -> pd.DataFrame:
    df = pd.DataFrame([e.to_row() for e in estimates], columns=TIMEVARYING_COLUMNS)
    return df.sort_values(["region", "generation_time", "method", "date"], kind="stable").reset_index(drop=True)


def collect(results: Sequence[RegionResult]) -> PipelineResults:
    growth = pd.DataFrame([row for r in results for row in r.growth], columns=GROWTH_COLUMNS)
    frames = [f for r in results for f in r.sensitivity]
    sensitivity = pd.concat(frames, ignore_index=True) if frames else pd.DataFrame(columns=SENSITIVITY_COLUMNS)
    failures = pd.DataFrame([row for r in results for row in r.failures], columns=FAILURE_COLUMNS)
    return PipelineResults(
        growth=growth.sort_values(["region", "generation_time"], kind="stable").reset_index(drop=True),
        sensitivity=sensitivity.reindex(columns=SENSITIVITY_COLUMNS),
        renewal=estimates_frame([e for r in results for e in r.renewal]),
        sliding=estimates_frame([e for r in results for e in r.sliding]),
        failures=failures,
    )


def run_series(series: Mapping[str, DailySeries], config: PipelineConfig) -> PipelineResults:
    """Run every estimator on already-built daily series."""
    config.validate()
    generation_times = build_generation_times(config.generation_times, truncate=config.generation_time_truncation)

    if config.add_total:
        series = add_total_series(series, label=config.total_label)

    tasks = [(s, gt) for s in series.values() for gt in generation_times.values()]
    logger.info("Estimating %d regions x %d generation-time assumptions", len(series), len(generation_times))

    if config.workers > 1:
        with ThreadPoolExecutor(max_workers=config.workers) as pool:
            results = list(pool.map(lambda task: estimate_region(task[0], task[1], config), tasks))
    else:
        results = [estimate_region(s, gt, config) for s, gt in tasks]

    out = collect(results)
    logger.info("Growth fits: %d, renewal estimates: %d, sliding-window estimates: %d, failures: %d",
                len(out.growth), len(out.renewal), len(out.sliding), len(out.failures))
    return out


def run_pipeline(records: Sequence[CaseRecord], config: PipelineConfig) -> PipelineResults:
    """Build daily series from case records and run every estimator."""
    config.validate()
    series = build_series(records, count=config.count_column)
    return run_series(series, config)


def run_from_csv(csv_path, config: PipelineConfig) -> PipelineResults:
    records = load_case_records(csv_path, unknown_threshold=config.unknown_location_threshold)
    return run_pipeline(records, config)


def write_results(results: PipelineResults, out_dir) -> Dict[str, pathlib.Path]:
    """Write one CSV per result table and return their paths."""
    out_dir = pathlib.Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    paths = {}
    for name, df in results.tables().items():
        path = out_dir / f"{name}.csv"
        df.to_csv(path, index=False)
        paths[name] = path
        logger.info("CSV written to: %s", path)
    return paths
