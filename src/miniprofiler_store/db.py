"""PostgreSQL repository for profiler runs.

This module provides `ProfilerStorage`, which owns the SQL text for the three
profiler tables and performs every round trip: listing run ids, saving a run
(run row, flattened timing rows, client timing rows), loading a run and
handing its rows to the reconstructor, and toggling the viewed flag.

Each public method opens its own connection through `_connect` and closes it
on every exit path; no connection or lock outlives a call. Storage errors are
logged and re-raised unchanged; there is no retry policy. Duplicate ids on
insert are ignored by `ON CONFLICT (id) DO NOTHING`, which makes `save`
idempotent.
"""
from __future__ import annotations

import logging
import re
from contextlib import contextmanager
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterator, List, Optional, Tuple
from uuid import UUID

import psycopg
from psycopg.rows import dict_row

from .mapping.flatten import assign_profiler_id, client_timing_rows, flatten_timings, profiler_row
from .mapping.reconstruct import rebuild_profiler
from .mapping.time_utils import to_storage_timestamp
from .models.profiler import MiniProfiler
from .models.rows import ClientTimingRow, ProfilerRow, TimingRow
from .schema import TableNames, create_table_statements

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .config import Settings

logger = logging.getLogger(__name__)

__all__ = ["ConfigurationError", "ListResultsOrder", "ProfilerStorage"]


class ConfigurationError(RuntimeError):
    """Raised at construction when connection parameters are missing or invalid."""


class ListResultsOrder(str, Enum):
    ASCENDING = "asc"
    DESCENDING = "desc"


_PROFILER_COLUMNS = (
    "id",
    "root_timing_id",
    "name",
    "started",
    "duration_milliseconds",
    "user",
    "has_user_viewed",
    "machine_name",
    "custom_links_json",
    "client_timings_redirect_count",
)
_TIMING_COLUMNS = (
    "id",
    "mini_profiler_id",
    "parent_timing_id",
    "name",
    "duration_milliseconds",
    "start_milliseconds",
    "is_root",
    "depth",
    "custom_timings_json",
)
_CLIENT_TIMING_COLUMNS = ("id", "mini_profiler_id", "name", "start", "duration")


def _insert_ignore_sql(table: str, columns: Tuple[str, ...]) -> str:
    cols = ", ".join(f'"{c}"' for c in columns)
    values = ", ".join(f"%({c})s" for c in columns)
    return f'INSERT INTO "{table}" ({cols}) VALUES ({values}) ON CONFLICT (id) DO NOTHING'


class ProfilerStorage:
    """Repository storing profiler runs in three PostgreSQL tables.

    Args:
        dsn: PostgreSQL connection string. Must be non-empty.
        table_prefix: Prefix for the table names (letters, digits and
            underscores only; empty for none).
        connect: Callable returning a new connection for a DSN. Defaults to
            `psycopg.connect`; tests substitute a fake.

    Raises:
        ConfigurationError: If `dsn` is empty or `table_prefix` is invalid.
    """

    def __init__(
        self,
        dsn: str,
        *,
        table_prefix: str = "",
        connect: Optional[Callable[[str], Any]] = None,
    ):
        if not dsn:
            raise ConfigurationError("PG_DSN is empty; cannot configure profiler storage")
        if not re.fullmatch(r"[A-Za-z0-9_]*", table_prefix or ""):
            raise ConfigurationError(f"Invalid table prefix {table_prefix!r}")
        self._dsn = dsn
        self._connect_fn: Callable[[str], Any] = connect or psycopg.connect
        self.tables = TableNames.for_prefix(table_prefix or "")
        logger.info(
            "Profiler storage init: profilers=%s timings=%s client_timings=%s",
            self.tables.profilers,
            self.tables.timings,
            self.tables.client_timings,
        )

    @classmethod
    def from_settings(cls, settings: Optional["Settings"] = None) -> "ProfilerStorage":
        """Build a storage instance from application settings."""
        if settings is None:
            from .config import get_settings

            settings = get_settings()
        return cls(settings.PG_DSN, table_prefix=settings.DB_TABLE_PREFIX)

    @contextmanager
    def _connect(self) -> Iterator[Any]:
        """Context manager yielding a live connection, closed on exit."""
        conn = self._connect_fn(self._dsn)
        try:
            yield conn
        finally:
            conn.close()

    # ------------------------------------------------------------------ schema

    def create_schema(self) -> None:
        """Create the profiler tables and indexes if they do not exist."""
        with self._connect() as conn:
            with conn.transaction():
                with conn.cursor() as cur:
                    for statement in create_table_statements(self.tables):
                        cur.execute(statement)
        logger.info(
            "Profiler schema ensured: %s, %s, %s",
            self.tables.profilers,
            self.tables.timings,
            self.tables.client_timings,
        )

    # -------------------------------------------------------------------- list

    def list(
        self,
        max_results: int,
        start: Optional[datetime] = None,
        finish: Optional[datetime] = None,
        order: ListResultsOrder = ListResultsOrder.DESCENDING,
    ) -> List[UUID]:
        """Return run ids started strictly between `start` and `finish`.

        Both bounds are optional and exclusive. Results are ordered by start
        time (`order`) and capped at `max_results`.
        """
        clauses: List[str] = []
        params: Dict[str, Any] = {"max_results": max_results}
        if finish is not None:
            clauses.append("started < %(finish)s")
            params["finish"] = to_storage_timestamp(finish)
        if start is not None:
            clauses.append("started > %(start)s")
            params["start"] = to_storage_timestamp(start)
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        direction = "DESC" if ListResultsOrder(order) is ListResultsOrder.DESCENDING else "ASC"
        sql = (
            f'SELECT id FROM "{self.tables.profilers}"{where} '
            f"ORDER BY started {direction} LIMIT %(max_results)s"
        )
        rows = self._query(sql, params)
        return [row["id"] for row in rows]

    def get_unviewed_ids(self, user: str) -> List[UUID]:
        """Return ids of the user's runs not yet viewed, oldest first."""
        sql = (
            f'SELECT id FROM "{self.tables.profilers}" '
            'WHERE "user" = %(user)s AND has_user_viewed = false ORDER BY started'
        )
        rows = self._query(sql, {"user": user})
        return [row["id"] for row in rows]

    def _query(self, sql: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        with self._connect() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                try:
                    cur.execute(sql, params)
                    rows: List[Dict[str, Any]] = cur.fetchall()
                except psycopg.Error as ex:
                    logger.error("Profiler query failed: %s", ex)
                    raise
        return rows

    # -------------------------------------------------------------------- save

    def save(self, profiler: MiniProfiler) -> None:
        """Persist a run with its timing tree and client timings.

        Rows whose id already exists are skipped, so saving the same run
        twice leaves exactly one copy of each row.
        """
        assign_profiler_id(profiler)
        run_row = profiler_row(profiler)
        timing_rows = flatten_timings(profiler.root)
        client_rows = client_timing_rows(profiler)

        run_params = run_row.model_dump()
        run_params["started"] = to_storage_timestamp(run_row.started)

        with self._connect() as conn:
            try:
                with conn.transaction():
                    with conn.cursor() as cur:
                        cur.execute(
                            _insert_ignore_sql(self.tables.profilers, _PROFILER_COLUMNS),
                            run_params,
                        )
                        if timing_rows:
                            cur.executemany(
                                _insert_ignore_sql(self.tables.timings, _TIMING_COLUMNS),
                                [row.model_dump() for row in timing_rows],
                            )
                        if client_rows:
                            cur.executemany(
                                _insert_ignore_sql(self.tables.client_timings, _CLIENT_TIMING_COLUMNS),
                                [row.model_dump() for row in client_rows],
                            )
            except psycopg.Error as ex:
                logger.error("Saving profiler %s failed: %s", profiler.id, ex)
                raise
        logger.debug(
            "Saved profiler %s: timings=%d client_timings=%d",
            profiler.id,
            len(timing_rows),
            len(client_rows),
        )

    # -------------------------------------------------------------------- load

    def load(self, id: UUID) -> Optional[MiniProfiler]:
        """Load a run and rebuild its timing tree.

        The three SELECTs are sent in a single pipeline round trip. Returns
        None when no run has this id; a run whose tree cannot be resolved is
        returned without a root.
        """
        params = {"id": id}
        with self._connect() as conn:
            try:
                with conn.pipeline():
                    run_cur = conn.cursor(row_factory=dict_row)
                    run_cur.execute(f'SELECT * FROM "{self.tables.profilers}" WHERE id = %(id)s', params)
                    timing_cur = conn.cursor(row_factory=dict_row)
                    timing_cur.execute(
                        f'SELECT * FROM "{self.tables.timings}" '
                        "WHERE mini_profiler_id = %(id)s ORDER BY start_milliseconds",
                        params,
                    )
                    client_cur = conn.cursor(row_factory=dict_row)
                    client_cur.execute(
                        f'SELECT * FROM "{self.tables.client_timings}" '
                        "WHERE mini_profiler_id = %(id)s ORDER BY start",
                        params,
                    )
                run_raw = run_cur.fetchone()
                timing_raw = timing_cur.fetchall()
                client_raw = client_cur.fetchall()
            except psycopg.Error as ex:
                logger.error("Loading profiler %s failed: %s", id, ex)
                raise

        if run_raw is None:
            logger.debug("Profiler %s not found", id)
            return None
        profiler = rebuild_profiler(
            ProfilerRow.model_validate(run_raw),
            [TimingRow.model_validate(row) for row in timing_raw],
            [ClientTimingRow.model_validate(row) for row in client_raw],
        )
        logger.debug(
            "Loaded profiler %s: timing_rows=%d client_timing_rows=%d",
            id,
            len(timing_raw),
            len(client_raw),
        )
        return profiler

    # ------------------------------------------------------------------ viewed

    def set_viewed(self, user: str, id: UUID) -> None:
        self._toggle_viewed(user, id, True)

    def set_unviewed(self, user: str, id: UUID) -> None:
        self._toggle_viewed(user, id, False)

    def _toggle_viewed(self, user: str, id: UUID, has_user_viewed: bool) -> None:
        # A user that does not own the run matches zero rows; not an error.
        sql = (
            f'UPDATE "{self.tables.profilers}" SET has_user_viewed = %(has_user_viewed)s '
            'WHERE id = %(id)s AND "user" = %(user)s'
        )
        with self._connect() as conn:
            try:
                with conn.transaction():
                    with conn.cursor() as cur:
                        cur.execute(sql, {"id": id, "user": user, "has_user_viewed": has_user_viewed})
                        updated = cur.rowcount
            except psycopg.Error as ex:
                logger.error("Updating viewed flag of profiler %s failed: %s", id, ex)
                raise
        logger.debug("Profiler %s viewed=%s for user %r: rows=%s", id, has_user_viewed, user, updated)
