"""DDL for the three profiler tables.

Table names are `<prefix>mini_profilers`, `<prefix>mini_profiler_timings` and
`<prefix>mini_profiler_client_timings`. Each table has a surrogate `row_id`
primary key and a unique index on the profiler-assigned `id`; the unique index
is the conflict target for `INSERT ... ON CONFLICT (id) DO NOTHING`.

Statements use `IF NOT EXISTS` so running them repeatedly is harmless.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import List

__all__ = ["TableNames", "create_table_statements"]


@dataclass(frozen=True)
class TableNames:
    """Resolved (prefixed) table names for one storage instance."""

    profilers: str
    timings: str
    client_timings: str

    @classmethod
    def for_prefix(cls, prefix: str) -> "TableNames":
        return cls(
            profilers=f"{prefix}mini_profilers",
            timings=f"{prefix}mini_profiler_timings",
            client_timings=f"{prefix}mini_profiler_client_timings",
        )


def create_table_statements(tables: TableNames) -> List[str]:
    """Return the CREATE TABLE / CREATE INDEX statements for `tables`."""
    return [
        f"""
        CREATE TABLE IF NOT EXISTS "{tables.profilers}" (
            row_id bigserial PRIMARY KEY,
            id uuid NOT NULL,
            root_timing_id uuid NULL,
            name varchar(200) NULL,
            started timestamp NOT NULL,
            duration_milliseconds numeric(7, 1) NOT NULL,
            "user" varchar(100) NULL,
            has_user_viewed boolean NOT NULL,
            machine_name varchar(100) NULL,
            custom_links_json text NULL,
            client_timings_redirect_count integer NULL
        )
        """,
        # Load selects everything by id.
        f'CREATE UNIQUE INDEX IF NOT EXISTS "ix_{tables.profilers}_id" ON "{tables.profilers}" (id)',
        # Unviewed lookups filter on user + flag.
        f'CREATE INDEX IF NOT EXISTS "ix_{tables.profilers}_user_has_user_viewed" '
        f'ON "{tables.profilers}" ("user", has_user_viewed)',
        f"""
        CREATE TABLE IF NOT EXISTS "{tables.timings}" (
            row_id bigserial PRIMARY KEY,
            id uuid NOT NULL,
            mini_profiler_id uuid NOT NULL,
            parent_timing_id uuid NULL,
            name varchar(200) NOT NULL,
            duration_milliseconds numeric(9, 3) NULL,
            start_milliseconds numeric(9, 3) NOT NULL,
            is_root boolean NOT NULL,
            depth smallint NOT NULL,
            custom_timings_json text NULL
        )
        """,
        f'CREATE UNIQUE INDEX IF NOT EXISTS "ix_{tables.timings}_id" ON "{tables.timings}" (id)',
        f'CREATE INDEX IF NOT EXISTS "ix_{tables.timings}_mini_profiler_id" '
        f'ON "{tables.timings}" (mini_profiler_id)',
        f"""
        CREATE TABLE IF NOT EXISTS "{tables.client_timings}" (
            row_id bigserial PRIMARY KEY,
            id uuid NOT NULL,
            mini_profiler_id uuid NOT NULL,
            name varchar(200) NOT NULL,
            start numeric(9, 3) NOT NULL,
            duration numeric(9, 3) NOT NULL
        )
        """,
        f'CREATE UNIQUE INDEX IF NOT EXISTS "ix_{tables.client_timings}_id" ON "{tables.client_timings}" (id)',
        f'CREATE INDEX IF NOT EXISTS "ix_{tables.client_timings}_mini_profiler_id" '
        f'ON "{tables.client_timings}" (mini_profiler_id)',
    ]
