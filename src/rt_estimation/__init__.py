"""Regional effective reproduction number estimates from daily case reports."""
from .version_info import VERSION as __version__

from .errors import (
    DataIntegrityError,
    DegenerateWindowError,
    DuplicateDateError,
    EarlyEstimateWarning,
    InvalidParametersError,
    NoValidWindowError,
    TooManyUnknownLocationsError,
)
from .records import CaseRecord, DailySeries, GrowthFitResult, TimeVaryingREstimate, TimeWindow
from .pipeline import PipelineConfig, PipelineResults, run_pipeline
