from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import Mock
from uuid import uuid4

import pytest
from typer.testing import CliRunner

from miniprofiler_store import __main__ as cli
from miniprofiler_store.db import ListResultsOrder, ProfilerStorage
from miniprofiler_store.mapping.flatten import assign_profiler_id, flatten_timings, profiler_row
from miniprofiler_store.mapping.reconstruct import rebuild_profiler
from miniprofiler_store.models.profiler import MiniProfiler

runner = CliRunner()


@pytest.fixture
def storage(monkeypatch):
    mock = Mock(spec=ProfilerStorage)
    monkeypatch.setattr(cli, "_storage", lambda: mock)
    return mock


def test_list_passes_window_and_order(storage):
    run_id = uuid4()
    storage.list.return_value = [run_id]

    result = runner.invoke(
        cli.app,
        ["list", "-n", "10", "--start", "2024-01-01", "--finish", "2024-02-01", "--order", "desc"],
    )

    assert result.exit_code == 0, result.output
    assert str(run_id) in result.output
    args, kwargs = storage.list.call_args
    assert args == (10,)
    assert kwargs["start"] == datetime(2024, 1, 1)  # allow-naive-datetime
    assert kwargs["finish"] == datetime(2024, 2, 1)  # allow-naive-datetime
    assert kwargs["order"] == ListResultsOrder.DESCENDING


def test_unviewed_prints_ids(storage):
    ids = [uuid4(), uuid4()]
    storage.get_unviewed_ids.return_value = ids
    result = runner.invoke(cli.app, ["unviewed", "alice"])
    assert result.exit_code == 0
    assert result.output.split() == [str(i) for i in ids]
    storage.get_unviewed_ids.assert_called_once_with("alice")


def test_show_renders_sorted_tree(storage, scenario_a):
    assign_profiler_id(scenario_a)
    storage.load.return_value = rebuild_profiler(
        profiler_row(scenario_a), flatten_timings(scenario_a.root), []
    )

    result = runner.invoke(cli.app, ["show", str(scenario_a.id)])

    assert result.exit_code == 0, result.output
    lines = result.output.splitlines()
    assert lines[0].startswith(str(scenario_a.id))
    assert [line.split()[0] for line in lines[1:4]] == ["t0", "t2", "t1"]
    assert lines[2].startswith("    t2")


def test_show_unknown_run_exits_nonzero(storage):
    storage.load.return_value = None
    result = runner.invoke(cli.app, ["show", str(uuid4())])
    assert result.exit_code == 1


def test_mark_viewed_and_unviewed(storage):
    run_id = uuid4()
    assert runner.invoke(cli.app, ["mark-viewed", "alice", str(run_id)]).exit_code == 0
    storage.set_viewed.assert_called_once_with("alice", run_id)
    assert runner.invoke(cli.app, ["mark-viewed", "bob", str(run_id), "--unviewed"]).exit_code == 0
    storage.set_unviewed.assert_called_once_with("bob", run_id)


def test_render_run_without_timings():
    text = cli._render(MiniProfiler(id=uuid4(), started=datetime(2024, 1, 1, tzinfo=timezone.utc)))
    assert "(no timings)" in text
