# src/rt_estimation/series/ingest.py
"""
Load a line-list of case reports into immutable CaseRecord tuples.

Expected columns: region, date, cases, and optionally deaths and region_name.
Dates must be ISO calendar dates (YYYY-MM-DD) with no time of day.
"""

import logging
from pathlib import Path
from typing import Iterable, Tuple, Union

import numpy as np
import pandas as pd

from ..errors import DataIntegrityError, MalformedDateError, RegionNameConflictError, TooManyUnknownLocationsError
from ..records import CaseRecord

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ("region", "date", "cases")
COUNT_COLUMNS = ("cases", "deaths")
UNKNOWN_LABELS = ("", "unknown", "nan", "none")
UNKNOWN_LOCATION_THRESHOLD = 5
ISO_DATE = r"\d{4}-\d{2}-\d{2}"


def read_case_frame(source: Union[str, Path, pd.DataFrame]) -> pd.DataFrame:
    """Return the raw records as a DataFrame (a copy when one is passed in)."""
    if isinstance(source, pd.DataFrame):
        df = source.copy()
    else:
        path = Path(source)
        if not path.exists():
            raise FileNotFoundError(f"Case CSV not found: {path}")
        df = pd.read_csv(path, dtype={"region": str, "region_name": str})

    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise DataIntegrityError(f"Case records are missing columns: {missing}")
    if "deaths" not in df.columns:
        df["deaths"] = 0
    return df


def parse_report_dates(values: pd.Series) -> pd.Series:
    """Parse ISO dates into datetime.date, rejecting anything with a time of day."""
    if pd.api.types.is_datetime64_any_dtype(values):
        parsed = values
    else:
        text = values.astype(str).str.strip()
        bad = ~text.str.fullmatch(ISO_DATE)
        if bad.any():
            raise MalformedDateError(
                f"Malformed report dates: {text[bad].unique()[:5].tolist()}"
            )
        parsed = pd.to_datetime(text, format="%Y-%m-%d", errors="coerce")

    if parsed.isna().any():
        raise MalformedDateError(f"{int(parsed.isna().sum())} report dates could not be parsed")
    if (parsed != parsed.dt.normalize()).any():
        raise MalformedDateError("Report dates must not carry a time-of-day component")
    return parsed.dt.date


def clamp_counts(values: pd.Series, column: str) -> pd.Series:
    """Coerce counts to non-negative integers; missing counts become 0."""
    numeric = pd.to_numeric(values, errors="coerce")
    bad = numeric.isna() & values.notna()
    if bad.any():
        raise DataIntegrityError(
            f"Non-numeric {column} values: {values[bad].unique()[:5].tolist()}"
        )
    negative = int((numeric < 0).sum())
    if negative:
        logger.debug("Clamped %d negative %s values to zero", negative, column)
    return numeric.fillna(0).clip(lower=0).round().astype(np.int64)


def is_unknown_location(regions: pd.Series, labels: Iterable[str] = UNKNOWN_LABELS) -> pd.Series:
    lowered = regions.astype(str).str.strip().str.lower()
    return regions.isna() | lowered.isin(set(labels))


def drop_unknown_locations(df: pd.DataFrame, threshold: int = UNKNOWN_LOCATION_THRESHOLD,
                           labels: Iterable[str] = UNKNOWN_LABELS) -> pd.DataFrame:
    unknown = is_unknown_location(df["region"], labels)
    n_unknown = int(unknown.sum())
    if n_unknown > threshold:
        raise TooManyUnknownLocationsError(n_unknown, threshold)
    if n_unknown:
        logger.warning("Dropping %d records with an unknown location", n_unknown)
    return df.loc[~unknown]


def check_region_names(df: pd.DataFrame) -> None:
    """Each region identifier must map to one name, and each name to one identifier."""
    if "region_name" not in df.columns:
        return
    pairs = df[["region", "region_name"]].dropna().drop_duplicates()
    names_per_id = pairs.groupby("region")["region_name"].nunique()
    ids_per_name = pairs.groupby("region_name")["region"].nunique()
    clashes = names_per_id[names_per_id > 1].index.tolist() + ids_per_name[ids_per_name > 1].index.tolist()
    if clashes:
        raise RegionNameConflictError(f"Region identifiers and names are not one-to-one: {clashes[:5]}")


def load_case_records(
    source: Union[str, Path, pd.DataFrame],
    unknown_threshold: int = UNKNOWN_LOCATION_THRESHOLD,
    unknown_labels: Iterable[str] = UNKNOWN_LABELS,
) -> Tuple[CaseRecord, ...]:
    """Validate and convert raw case reports.

    Negative case and death counts are clamped to zero. Up to
    ``unknown_threshold`` records without a usable location are dropped with a
    warning; more than that aborts with TooManyUnknownLocationsError.
    """
    df = read_case_frame(source)
    df = drop_unknown_locations(df, threshold=unknown_threshold, labels=unknown_labels)
    df = df.assign(region=df["region"].astype(str).str.strip())
    check_region_names(df)

    df = df.assign(
        date=parse_report_dates(df["date"]),
        cases=clamp_counts(df["cases"], "cases"),
        deaths=clamp_counts(df["deaths"], "deaths"),
    )
    has_names = "region_name" in df.columns

    records = tuple(
        CaseRecord(
            region=row.region,
            date=row.date,
            cases=int(row.cases),
            deaths=int(row.deaths),
            region_name=(row.region_name if has_names and pd.notna(row.region_name) else None),
        )
        for row in df.itertuples(index=False)
    )
    logger.info("Loaded %d case records for %d regions", len(records), df["region"].nunique())
    return records
