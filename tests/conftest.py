import sys
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID, uuid4

import pytest

# Ensure `src` is on sys.path for tests when not installed editable.
SRC = Path(__file__).resolve().parent.parent / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from miniprofiler_store.models.profiler import MiniProfiler, Timing  # noqa: E402


class FakeCursor:
    """Records statements and serves canned rows chosen by SQL substring."""

    def __init__(self, conn: "FakeConnection", row_factory: Any = None):
        self._conn = conn
        self._rows: List[Dict[str, Any]] = []
        self.rowcount = -1
        self.row_factory = row_factory

    def __enter__(self) -> "FakeCursor":
        return self

    def __exit__(self, *exc: Any) -> None:
        return None

    def execute(self, sql: str, params: Any = None) -> None:
        self._conn.statements.append((sql, params))
        if self._conn.fail_on and self._conn.fail_on in sql:
            raise self._conn.error
        self._rows = list(self._conn.rows_for(sql))
        self.rowcount = self._conn.rowcount

    def executemany(self, sql: str, params_seq: Any) -> None:
        self._conn.statements.append((sql, list(params_seq)))
        if self._conn.fail_on and self._conn.fail_on in sql:
            raise self._conn.error

    def fetchall(self) -> List[Dict[str, Any]]:
        if self._conn.fail_on_fetch:
            raise self._conn.error
        return list(self._rows)

    def fetchone(self) -> Optional[Dict[str, Any]]:
        return self._rows[0] if self._rows else None


class FakeConnection:
    def __init__(self, results: Optional[List[Tuple[str, List[Dict[str, Any]]]]] = None):
        self.results = results or []
        self.statements: List[Tuple[str, Any]] = []
        self.closed = False
        self.transactions = 0
        self.committed = 0
        self.pipelines = 0
        self.rowcount = 0
        self.fail_on: Optional[str] = None
        self.fail_on_fetch = False
        self.error: Exception = RuntimeError("boom")

    def rows_for(self, sql: str) -> List[Dict[str, Any]]:
        for needle, rows in self.results:
            if needle in sql:
                return rows
        return []

    def cursor(self, row_factory: Any = None) -> FakeCursor:
        return FakeCursor(self, row_factory=row_factory)

    @contextmanager
    def transaction(self):
        self.transactions += 1
        yield
        self.committed += 1

    @contextmanager
    def pipeline(self):
        self.pipelines += 1
        yield

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_conn() -> FakeConnection:
    return FakeConnection()


@pytest.fixture
def connect_to(fake_conn):
    """Connection factory handing out `fake_conn` and recording DSNs."""
    dsns: List[str] = []

    def _connect(dsn: str) -> FakeConnection:
        dsns.append(dsn)
        return fake_conn

    _connect.dsns = dsns  # type: ignore[attr-defined]
    return _connect


@pytest.fixture
def scenario_a() -> MiniProfiler:
    """Run r1 with root t0 and children t1 (start 5) and t2 (start 2)."""
    profiler = MiniProfiler(
        id=UUID("00000000-0000-0000-0000-0000000000a1"),
        started=datetime(2024, 1, 1, tzinfo=timezone.utc),
        name="GET /home",
        user="alice",
        machine_name="web-01",
        duration_milliseconds=12.5,
    )
    root = Timing(
        id=UUID("00000000-0000-0000-0000-000000000000"),
        name="t0",
        start_milliseconds=0,
        duration_milliseconds=12.5,
        is_root=True,
    )
    root.add_child(
        Timing(id=UUID("00000000-0000-0000-0000-000000000001"), name="t1", start_milliseconds=5, duration_milliseconds=3)
    )
    root.add_child(
        Timing(id=UUID("00000000-0000-0000-0000-000000000002"), name="t2", start_milliseconds=2, duration_milliseconds=1)
    )
    profiler.root = root
    return profiler


@pytest.fixture
def make_timing():
    def _make(name: str, start: float, *children: Timing, duration: float = 1.0) -> Timing:
        timing = Timing(id=uuid4(), name=name, start_milliseconds=start, duration_milliseconds=duration)
        for child in children:
            timing.add_child(child)
        return timing

    return _make
