"""Relational storage for MiniProfiler-style timing trees.

The package flattens an in-memory profiler run (a tree of timings plus
optional client timings) into rows for PostgreSQL and rebuilds the exact tree
from those rows on load. See `miniprofiler_store.db.ProfilerStorage` for the
repository entry point.
"""

from .db import ConfigurationError, ListResultsOrder, ProfilerStorage
from .models.profiler import ClientTiming, ClientTimings, MiniProfiler, Timing

__all__ = [
    "ClientTiming",
    "ClientTimings",
    "ConfigurationError",
    "ListResultsOrder",
    "MiniProfiler",
    "ProfilerStorage",
    "Timing",
]
