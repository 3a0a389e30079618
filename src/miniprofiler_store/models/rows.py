"""Pydantic models for the rows of the three profiler tables.

These are the flat shapes written by `ProfilerStorage.save` and read back by
`ProfilerStorage.load`. Rows fetched with psycopg's `dict_row` factory are
validated into these models before the tree is rebuilt, so numeric columns
arriving as `Decimal` and naive timestamps are normalized in one place.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class ProfilerRow(BaseModel):
    """One row of the `mini_profilers` table."""

    model_config = ConfigDict(extra="ignore")

    id: UUID
    root_timing_id: Optional[UUID] = None
    name: Optional[str] = None
    started: datetime
    duration_milliseconds: float = Field(default=0.0, ge=0)
    user: Optional[str] = None
    has_user_viewed: bool = False
    machine_name: Optional[str] = None
    custom_links_json: Optional[str] = None
    client_timings_redirect_count: Optional[int] = None


class TimingRow(BaseModel):
    """One row of the `mini_profiler_timings` table."""

    model_config = ConfigDict(extra="ignore")

    id: UUID
    mini_profiler_id: UUID
    parent_timing_id: Optional[UUID] = None
    name: str
    duration_milliseconds: Optional[float] = Field(default=None, ge=0)
    start_milliseconds: float = Field(ge=0)
    is_root: bool = False
    depth: int = 0
    custom_timings_json: Optional[str] = None


class ClientTimingRow(BaseModel):
    """One row of the `mini_profiler_client_timings` table."""

    model_config = ConfigDict(extra="ignore")

    id: UUID
    mini_profiler_id: UUID
    name: str
    start: float
    duration: float


__all__ = ["ClientTimingRow", "ProfilerRow", "TimingRow"]
