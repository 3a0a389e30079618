"""In-memory representation of a profiler run and its timing tree.

A `MiniProfiler` owns exactly one root `Timing` and an optional
`ClientTimings` collection. Timings own their children; the `parent_timing`
and `profiler` attributes are non-owning back references and are excluded
from comparison and repr so that trees never recurse through them.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterator, List, Optional
from uuid import UUID, uuid4


@dataclass(eq=False)
class Timing:
    """A single timed step in the profiler tree."""

    name: str
    start_milliseconds: float
    duration_milliseconds: Optional[float] = None
    id: UUID = field(default_factory=uuid4)
    mini_profiler_id: Optional[UUID] = None
    parent_timing_id: Optional[UUID] = None
    is_root: bool = False
    depth: int = 0
    custom_timings_json: Optional[str] = None
    children: List["Timing"] = field(default_factory=list, repr=False)
    parent_timing: Optional["Timing"] = field(default=None, repr=False)
    profiler: Optional["MiniProfiler"] = field(default=None, repr=False)

    @property
    def owner(self) -> Optional["MiniProfiler"]:
        """Resolve the owning run, walking up through parents if needed."""
        node: Optional[Timing] = self
        while node is not None:
            if node.profiler is not None:
                return node.profiler
            node = node.parent_timing
        return None

    def add_child(self, child: "Timing") -> None:
        """Attach `child` as the last child of this timing.

        Sets the child's parent link and parent id. Depth is stored as a
        cache and only rewritten when it disagrees with the parent chain.
        """
        child.parent_timing = self
        child.parent_timing_id = self.id
        if child.depth != self.depth + 1:
            child.depth = self.depth + 1
        self.children.append(child)

    def walk(self) -> Iterator["Timing"]:
        """Yield this timing and all descendants in pre-order."""
        stack: List[Timing] = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))


@dataclass
class ClientTiming:
    """A browser-side timing event (navigation, paint, etc.)."""

    name: str
    start: float
    duration: float
    id: Optional[UUID] = None
    mini_profiler_id: Optional[UUID] = None


@dataclass
class ClientTimings:
    redirect_count: int = 0
    timings: List[ClientTiming] = field(default_factory=list)


@dataclass(eq=False)
class MiniProfiler:
    """A complete profiler run: metadata, timing tree and client timings."""

    id: UUID
    started: datetime
    name: Optional[str] = None
    user: Optional[str] = None
    machine_name: Optional[str] = None
    duration_milliseconds: float = 0.0
    has_user_viewed: bool = False
    custom_links_json: Optional[str] = None
    client_timings_redirect_count: Optional[int] = None
    root: Optional[Timing] = field(default=None, repr=False)
    client_timings: Optional[ClientTimings] = field(default=None, repr=False)

    @property
    def root_timing_id(self) -> Optional[UUID]:
        return self.root.id if self.root is not None else None

    def all_timings(self) -> List[Timing]:
        """Return every timing of the tree in pre-order (empty without a root)."""
        if self.root is None:
            return []
        return list(self.root.walk())
