# src/rt_estimation/errors.py
"""Exceptions raised by the estimation pipeline.

Integrity and parameter errors stop a run. Region errors only remove one
region from one result table.
"""


class EstimationError(Exception):
    """Base class for every error raised by rt_estimation."""


# ---------- fatal: input data ----------

class DataIntegrityError(EstimationError, ValueError):
    """The case records cannot be turned into reliable daily series."""


class DuplicateDateError(DataIntegrityError):
    def __init__(self, region, dates):
        self.region = region
        self.dates = list(dates)
        shown = ", ".join(str(d) for d in self.dates[:5])
        super().__init__(f"Region {region!r} has duplicate report dates: {shown}")


class MalformedDateError(DataIntegrityError):
    pass


class TooManyUnknownLocationsError(DataIntegrityError):
    def __init__(self, count, threshold):
        self.count = count
        self.threshold = threshold
        super().__init__(
            f"{count} records have an unknown location (threshold is {threshold})"
        )


class RegionNameConflictError(DataIntegrityError):
    pass


# ---------- fatal: configuration ----------

class InvalidParametersError(EstimationError, ValueError):
    """Non-positive generation-time parameters or an unusable config value."""


# ---------- recoverable, per region ----------

class RegionEstimationError(EstimationError):
    """Estimation failed for a single region; other regions are unaffected."""


class DegenerateWindowError(RegionEstimationError):
    pass


class NoValidWindowError(RegionEstimationError):
    pass


# ---------- non-fatal ----------

class EarlyEstimateWarning(UserWarning):
    """Too few cases had accumulated for a sliding-window estimate to be trusted.

    Attached to the affected estimates, never raised.
    """

    def __init__(self, cumulative_cases, min_cases):
        self.cumulative_cases = int(cumulative_cases)
        self.min_cases = int(min_cases)
        super().__init__(
            f"only {self.cumulative_cases} cases accumulated (minimum {self.min_cases})"
        )
