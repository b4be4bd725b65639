from .calculate_generation_weights import (
    DEFAULT_GENERATION_TIMES,
    DISPLAY_TRUNCATION,
    GenerationTimeDistribution,
    build_generation_times,
    compute_generation_weights,
    discretize,
)
