"""Row -> tree reconstruction for the read path.

Rebuilds a `MiniProfiler` with its full timing tree from the three row sets
returned by `ProfilerStorage.load`. The rows carry no ordering guarantee that
is relied upon here; sibling order comes solely from `start_milliseconds`.

Reconstruction is best-effort by contract:

* A missing run row means "not found" and yields `None`.
* A `root_timing_id` that matches no timing row yields the run without a tree.
* Timing rows whose parent chain does not reach the root (orphans, or rows
  beyond the reachable tree) are dropped together with their descendants.
  They are never reported as errors; `orphaned_timings` exposes them for
  diagnostics.

Construction is two-pass: every row is first materialized as a detached
`Timing`, then parent/child links are wired from a parent-id index.

Public Functions:
    index_by_parent: Group non-root timings by parent id
    orphaned_timings: Timings a rebuild would drop
    rebuild_profiler: Full reconstruction of a run
"""
from __future__ import annotations

import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Sequence, Set
from uuid import UUID

from ..models.profiler import ClientTiming, ClientTimings, MiniProfiler, Timing
from ..models.rows import ClientTimingRow, ProfilerRow, TimingRow
from .time_utils import ensure_utc

logger = logging.getLogger(__name__)

__all__ = [
    "index_by_parent",
    "orphaned_timings",
    "rebuild_profiler",
]


def _timing_from_row(row: TimingRow) -> Timing:
    return Timing(
        id=row.id,
        name=row.name,
        start_milliseconds=row.start_milliseconds,
        duration_milliseconds=row.duration_milliseconds,
        mini_profiler_id=row.mini_profiler_id,
        parent_timing_id=row.parent_timing_id,
        is_root=row.is_root,
        depth=row.depth,
        custom_timings_json=row.custom_timings_json,
    )


def index_by_parent(timings: Iterable[Timing]) -> Dict[Optional[UUID], List[Timing]]:
    """Group timings by `parent_timing_id`, each group sorted by start offset.

    The sort is stable, so equal start offsets keep their input order.
    """
    grouped: Dict[Optional[UUID], List[Timing]] = defaultdict(list)
    for timing in timings:
        grouped[timing.parent_timing_id].append(timing)
    for siblings in grouped.values():
        siblings.sort(key=lambda t: t.start_milliseconds)
    return dict(grouped)


def _attach_children(root: Timing, by_parent: Dict[Optional[UUID], List[Timing]]) -> Set[UUID]:
    """Wire the subtree under `root` from the index; return visited ids."""
    visited: Set[UUID] = {root.id}
    pending: List[Timing] = [root]
    while pending:
        parent = pending.pop()
        for child in by_parent.get(parent.id, ()):
            if child.id in visited:
                # Duplicate id or a cycle in stored parent ids; keep the tree acyclic.
                continue
            visited.add(child.id)
            parent.add_child(child)
            pending.append(child)
    return visited


def orphaned_timings(rows: Sequence[TimingRow], root_timing_id: Optional[UUID]) -> List[TimingRow]:
    """Return the rows a rebuild rooted at `root_timing_id` would drop.

    With no root (or a root id matching no row) every row is reported.
    """
    timings = [_timing_from_row(row) for row in rows]
    root = next((t for t in timings if t.id == root_timing_id), None)
    if root is None:
        return list(rows)
    visited = _attach_children(root, index_by_parent(t for t in timings if t is not root))
    return [row for row in rows if row.id not in visited]


def _profiler_from_row(row: ProfilerRow) -> MiniProfiler:
    return MiniProfiler(
        id=row.id,
        started=ensure_utc(row.started),
        name=row.name,
        user=row.user,
        machine_name=row.machine_name,
        duration_milliseconds=row.duration_milliseconds,
        has_user_viewed=row.has_user_viewed,
        custom_links_json=row.custom_links_json,
        client_timings_redirect_count=row.client_timings_redirect_count,
    )


def rebuild_profiler(
    profiler_row: Optional[ProfilerRow],
    timing_rows: Sequence[TimingRow],
    client_timing_rows: Sequence[ClientTimingRow],
) -> Optional[MiniProfiler]:
    """Rebuild a profiler run and its timing tree from stored rows.

    Args:
        profiler_row: The run row, or None when the id was not found.
        timing_rows: Timing rows of the run, in any order.
        client_timing_rows: Client timing rows of the run, already in the
            order they should be exposed (the repository sorts by `start`).

    Returns:
        The rebuilt `MiniProfiler`, or None when `profiler_row` is None. The
        run's `root` is left unset when the root row cannot be resolved.
    """
    if profiler_row is None:
        return None

    profiler = _profiler_from_row(profiler_row)

    if profiler_row.root_timing_id is not None and timing_rows:
        timings = [_timing_from_row(row) for row in timing_rows]
        root = next((t for t in timings if t.id == profiler_row.root_timing_id), None)
        if root is None:
            logger.debug(
                "Profiler %s: root timing %s not among %d timing rows; returning run without tree",
                profiler.id,
                profiler_row.root_timing_id,
                len(timings),
            )
        else:
            # Every row gets its owner, reachable or not.
            for timing in timings:
                timing.profiler = profiler
            root.parent_timing = None
            root.parent_timing_id = None
            by_parent = index_by_parent(t for t in timings if t is not root)
            visited = _attach_children(root, by_parent)
            profiler.root = root
            dropped = len(timings) - len(visited)
            if dropped:
                logger.debug(
                    "Profiler %s: dropped %d timing rows not reachable from root %s",
                    profiler.id,
                    dropped,
                    root.id,
                )

    if client_timing_rows or profiler_row.client_timings_redirect_count is not None:
        profiler.client_timings = ClientTimings(
            redirect_count=profiler_row.client_timings_redirect_count or 0,
            timings=[
                ClientTiming(
                    id=row.id,
                    mini_profiler_id=row.mini_profiler_id,
                    name=row.name,
                    start=row.start,
                    duration=row.duration,
                )
                for row in client_timing_rows
            ],
        )

    return profiler
