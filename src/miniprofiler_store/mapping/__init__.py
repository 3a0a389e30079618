"""Tree <-> row mapping for profiler runs.

`flatten` turns an in-memory run into rows for insertion; `reconstruct`
rebuilds the run from rows read back. Neither module performs I/O.
"""

from .flatten import (
    assign_profiler_id,
    client_timing_rows,
    flatten_timings,
    profiler_row,
    truncate,
)
from .reconstruct import index_by_parent, orphaned_timings, rebuild_profiler
from .time_utils import ensure_utc, to_storage_timestamp

__all__ = [
    "assign_profiler_id",
    "client_timing_rows",
    "ensure_utc",
    "flatten_timings",
    "index_by_parent",
    "orphaned_timings",
    "profiler_row",
    "rebuild_profiler",
    "to_storage_timestamp",
    "truncate",
]
