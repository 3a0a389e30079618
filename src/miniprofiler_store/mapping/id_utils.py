"""Deterministic client timing ID generation using UUIDv5.

Client timings arrive from the browser with ids that cannot be trusted, so
every id is replaced at save time. Deriving the replacement from the run id
and the timing's position keeps repeated saves of the same run idempotent:
the second insert hits the same primary keys and is ignored.

Constants:
    CLIENT_TIMING_NAMESPACE: UUIDv5 namespace derived from DNS namespace +
        seed string "miniprofiler-store-client-timing". Changing it changes
        every generated id.

ID Format:
    Client timing ID: UUIDv5(CLIENT_TIMING_NAMESPACE, f"{profiler_id}:{index}:{name}")
"""
from __future__ import annotations

from uuid import NAMESPACE_DNS, UUID, uuid5

CLIENT_TIMING_NAMESPACE = uuid5(NAMESPACE_DNS, "miniprofiler-store-client-timing")

__all__ = ["CLIENT_TIMING_NAMESPACE", "client_timing_uuid"]


def client_timing_uuid(profiler_id: UUID, index: int, name: str) -> UUID:
    """Generate the id of the `index`-th client timing of a run."""
    return uuid5(CLIENT_TIMING_NAMESPACE, f"{profiler_id}:{index}:{name}")
