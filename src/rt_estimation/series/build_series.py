# src/rt_estimation/series/build_series.py
# Reshape irregular (region, date, count) records into dense daily series

from collections import Counter, defaultdict
import logging
from typing import Dict, Iterable, Mapping

import numpy as np

from ..errors import DuplicateDateError, InvalidParametersError
from ..records import CaseRecord, DailySeries

logger = logging.getLogger(__name__)

COUNT_FIELDS = ("cases", "deaths")


def build_region_series(region, observations):
    """Zero-filled series spanning the first to last observed date.

    observations: list of (date, count) for a single region
    """
    seen = Counter(d for d, _ in observations)
    duplicates = sorted(d for d, n in seen.items() if n > 1)
    if duplicates:
        raise DuplicateDateError(region, duplicates)

    first = min(seen)
    last = max(seen)
    counts = np.zeros((last - first).days + 1, dtype=np.int64)
    for d, c in observations:
        counts[(d - first).days] = c
    return DailySeries(region=region, start=first, counts=counts)


def build_series(records: Iterable[CaseRecord], count: str = "cases") -> Dict[str, DailySeries]:
    """Group records by region and build one DailySeries each.

    Counts are taken as given; clamping negatives is done at ingestion.
    """
    if count not in COUNT_FIELDS:
        raise InvalidParametersError(f"count must be one of {COUNT_FIELDS}, got {count!r}")

    grouped = defaultdict(list)
    for rec in records:
        grouped[rec.region].append((rec.date, getattr(rec, count)))

    series = {region: build_region_series(region, grouped[region]) for region in sorted(grouped)}
    logger.debug("Built %d %s series", len(series), count)
    return series


def add_total_series(series: Mapping[str, DailySeries], label: str = "total") -> Dict[str, DailySeries]:
    """Return a copy of ``series`` with an extra region summing all of them."""
    if not series:
        return dict(series)
    if label in series:
        raise InvalidParametersError(f"Region {label!r} already exists; pick another total label")

    first = min(s.start for s in series.values())
    last = max(s.end for s in series.values())
    total = np.zeros((last - first).days + 1, dtype=np.int64)
    for s in series.values():
        offset = (s.start - first).days
        total[offset:offset + len(s)] += s.counts

    out = dict(series)
    out[label] = DailySeries(region=label, start=first, counts=total)
    return out
