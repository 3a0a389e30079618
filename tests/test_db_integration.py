"""End-to-end checks against a live PostgreSQL (skipped without PG_DSN)."""

from __future__ import annotations

import os
from datetime import datetime, timezone
from uuid import uuid4

import psycopg
import pytest

from miniprofiler_store.db import ListResultsOrder, ProfilerStorage
from miniprofiler_store.models.profiler import ClientTiming, ClientTimings, MiniProfiler, Timing

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(not os.environ.get("PG_DSN"), reason="PG_DSN not set"),
]


@pytest.fixture
def storage():
    prefix = f"t{uuid4().hex[:8]}_"
    store = ProfilerStorage(os.environ["PG_DSN"], table_prefix=prefix)
    store.create_schema()
    yield store
    with psycopg.connect(os.environ["PG_DSN"]) as conn:
        for table in (store.tables.profilers, store.tables.timings, store.tables.client_timings):
            conn.execute(f'DROP TABLE IF EXISTS "{table}"')


def _count(store: ProfilerStorage, table: str) -> int:
    with psycopg.connect(os.environ["PG_DSN"]) as conn:
        return conn.execute(f'SELECT count(*) FROM "{table}"').fetchone()[0]


def _run(started: datetime, user: str = "alice") -> MiniProfiler:
    root = Timing(name="t0", start_milliseconds=0, duration_milliseconds=9, is_root=True)
    root.add_child(Timing(name="t1", start_milliseconds=5, duration_milliseconds=3))
    root.add_child(Timing(name="t2", start_milliseconds=2, duration_milliseconds=1))
    return MiniProfiler(
        id=uuid4(),
        started=started,
        name="n" * 201,
        user=user,
        duration_milliseconds=9,
        root=root,
        client_timings=ClientTimings(redirect_count=0, timings=[ClientTiming(name="load", start=1, duration=2)]),
    )


def test_save_load_round_trip(storage):
    run = _run(datetime(2024, 1, 1, tzinfo=timezone.utc))
    storage.save(run)

    loaded = storage.load(run.id)

    assert loaded is not None
    assert loaded.started == datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert loaded.started.tzinfo == timezone.utc
    assert loaded.name == "n" * 200
    assert [c.name for c in loaded.root.children] == ["t2", "t1"]
    assert loaded.client_timings.redirect_count == 0
    assert [c.name for c in loaded.client_timings.timings] == ["load"]
    assert storage.load(uuid4()) is None


def test_save_is_idempotent(storage):
    run = _run(datetime(2024, 1, 1, tzinfo=timezone.utc))
    storage.save(run)
    storage.save(run)
    assert _count(storage, storage.tables.profilers) == 1
    assert _count(storage, storage.tables.timings) == 3
    assert _count(storage, storage.tables.client_timings) == 1


def test_list_window_is_exclusive_and_newest_first(storage):
    runs = [_run(datetime(2024, 1, day, tzinfo=timezone.utc)) for day in (1, 10, 20)]
    runs.append(_run(datetime(2024, 2, 1, tzinfo=timezone.utc)))
    for run in runs:
        storage.save(run)

    ids = storage.list(
        10,
        start=datetime(2024, 1, 1, tzinfo=timezone.utc),
        finish=datetime(2024, 2, 1, tzinfo=timezone.utc),
        order=ListResultsOrder.DESCENDING,
    )

    assert ids == [runs[2].id, runs[1].id]
    assert storage.list(1, order=ListResultsOrder.ASCENDING) == [runs[0].id]


def test_viewed_flag_is_scoped_to_owner(storage):
    run = _run(datetime(2024, 1, 1, tzinfo=timezone.utc), user="alice")
    storage.save(run)
    assert storage.get_unviewed_ids("alice") == [run.id]

    storage.set_viewed("alice", run.id)
    storage.set_unviewed("bob", run.id)

    assert storage.load(run.id).has_user_viewed is True
    assert storage.get_unviewed_ids("alice") == []
