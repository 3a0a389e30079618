"""Tree -> row flattening for the write path.

Everything here is pure: the functions take an in-memory `MiniProfiler` and
return lists of row models ready for bulk insertion. The only mutation is the
prerequisite pass in `assign_profiler_id`, which stamps the run id onto every
timing before traversal, and the replacement of client timing ids.

Public Functions:
    truncate: Silent length cap for bounded string columns
    assign_profiler_id: Stamp run id and back reference on every timing
    flatten_timings: Pre-order traversal producing `TimingRow` objects
    profiler_row: Row for the run itself
    client_timing_rows: Rows for client timings with replaced ids
"""
from __future__ import annotations

from typing import List, Optional, Tuple

from ..models.profiler import MiniProfiler, Timing
from ..models.rows import ClientTimingRow, ProfilerRow, TimingRow
from .id_utils import client_timing_uuid
from .time_utils import ensure_utc

NAME_MAX_LEN = 200
USER_MAX_LEN = 100
MACHINE_NAME_MAX_LEN = 100

__all__ = [
    "NAME_MAX_LEN",
    "USER_MAX_LEN",
    "MACHINE_NAME_MAX_LEN",
    "truncate",
    "assign_profiler_id",
    "flatten_timings",
    "profiler_row",
    "client_timing_rows",
]


def truncate(value: Optional[str], max_len: int) -> Optional[str]:
    """Return `value` cut to `max_len` characters; `None` passes through."""
    if value is None:
        return None
    return value[:max_len]


def assign_profiler_id(profiler: MiniProfiler) -> None:
    """Set `mini_profiler_id` and the owner reference on every timing.

    Runs before flattening so that each row knows its run id. The root is
    included.
    """
    if profiler.root is None:
        return
    for timing in profiler.root.walk():
        timing.mini_profiler_id = profiler.id
        timing.profiler = profiler


def _timing_row(timing: Timing, parent: Optional[Timing], depth: int) -> TimingRow:
    if timing.mini_profiler_id is None:
        raise ValueError(f"Timing {timing.id} has no mini_profiler_id; call assign_profiler_id first")
    return TimingRow(
        id=timing.id,
        mini_profiler_id=timing.mini_profiler_id,
        parent_timing_id=parent.id if parent is not None else None,
        name=truncate(timing.name, NAME_MAX_LEN) or "",
        duration_milliseconds=timing.duration_milliseconds,
        start_milliseconds=timing.start_milliseconds,
        is_root=parent is None,
        depth=depth,
        custom_timings_json=timing.custom_timings_json,
    )


def flatten_timings(root: Optional[Timing]) -> List[TimingRow]:
    """Flatten a timing tree into rows in pre-order.

    Each node is emitted before its children, and children are visited in
    the order held by `Timing.children`; no re-sorting happens here. The
    emitted `parent_timing_id` is the id of the node the traversal came from,
    or `None` for the root. `is_root` and `depth` are likewise taken from the
    traversal: only the root is flagged, it keeps its own depth, and every
    child is written one level below the node it was reached from.

    Args:
        root: Root of the tree, or None for a run without timings.

    Returns:
        One `TimingRow` per node (empty list when `root` is None).
    """
    rows: List[TimingRow] = []
    if root is None:
        return rows
    # Explicit stack keeps very deep trees clear of the recursion limit.
    stack: List[Tuple[Timing, Optional[Timing], int]] = [(root, None, root.depth)]
    while stack:
        node, parent, depth = stack.pop()
        rows.append(_timing_row(node, parent, depth))
        for child in reversed(node.children):
            stack.append((child, node, depth + 1))
    return rows


def profiler_row(profiler: MiniProfiler) -> ProfilerRow:
    """Build the run row, truncating bounded string columns."""
    client_timings = profiler.client_timings
    return ProfilerRow(
        id=profiler.id,
        root_timing_id=profiler.root_timing_id,
        name=truncate(profiler.name, NAME_MAX_LEN),
        started=ensure_utc(profiler.started),
        duration_milliseconds=profiler.duration_milliseconds,
        user=truncate(profiler.user, USER_MAX_LEN),
        has_user_viewed=profiler.has_user_viewed,
        machine_name=truncate(profiler.machine_name, MACHINE_NAME_MAX_LEN),
        custom_links_json=profiler.custom_links_json,
        client_timings_redirect_count=(
            client_timings.redirect_count if client_timings is not None else None
        ),
    )


def client_timing_rows(profiler: MiniProfiler) -> List[ClientTimingRow]:
    """Build client timing rows, replacing every id with a freshly derived one.

    Caller-supplied ids are discarded. The replacement is a UUIDv5 of the run
    id and position (see `id_utils`), so saving the same run twice produces
    the same keys. The run id is stamped onto each in-memory client timing as
    well as the emitted row.
    """
    client_timings = profiler.client_timings
    if client_timings is None or not client_timings.timings:
        return []
    rows: List[ClientTimingRow] = []
    for index, timing in enumerate(client_timings.timings):
        timing.mini_profiler_id = profiler.id
        timing.id = client_timing_uuid(profiler.id, index, timing.name)
        rows.append(
            ClientTimingRow(
                id=timing.id,
                mini_profiler_id=profiler.id,
                name=truncate(timing.name, NAME_MAX_LEN) or "",
                start=timing.start,
                duration=timing.duration,
            )
        )
    return rows
