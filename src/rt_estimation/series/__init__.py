from .build_series import add_total_series, build_series
from .ingest import load_case_records
