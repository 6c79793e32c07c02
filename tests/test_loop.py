from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

import pytest

from boardgame_catalog_builder.clients.bgg_client import EnrichmentRecord
from boardgame_catalog_builder.pipelines.context import (
    BatchSettings,
    InputNotFoundError,
    LoopSettings,
)
from boardgame_catalog_builder.pipelines.enrich_pipeline import run_enrich_batch
from boardgame_catalog_builder.pipelines.loop_pipeline import (
    LoopController,
    LoopState,
    build_enrich_command,
    count_missing,
    run_batch_subprocess,
    run_loop,
)

from helpers import FakeLookupClient, read_rows, write_rows


def _found(game_id: str) -> EnrichmentRecord:
    return EnrichmentRecord(game_id=game_id, description=f"About {game_id}", primary_name=game_id)


def _in_process_runner(client: FakeLookupClient, runs: list[BatchSettings]):
    def _run(settings: BatchSettings) -> int:
        runs.append(settings)
        run_enrich_batch(settings, client=client)
        return 0

    return _run


def _settings(tmp_path: Path, n: int = 5, limit: int = 2) -> LoopSettings:
    inp = write_rows(tmp_path / "in.csv", [{"id": str(i)} for i in range(1, n + 1)])
    return LoopSettings(input_csv=inp, output_csv=tmp_path / "out.csv", limit=limit, interval_s=3)


def test_count_missing(tmp_path: Path) -> None:
    inp = write_rows(tmp_path / "in.csv", [{"id": "1"}, {"id": "2"}, {"id": ""}, {"id": "3"}])
    out = tmp_path / "out.csv"
    assert count_missing(inp, out) == 3

    write_rows(out, [{"id": "1", "description": "x"}, {"id": "2", "description": " "}])
    assert count_missing(inp, out) == 2


def test_count_missing_tolerates_unreadable_output(tmp_path: Path, caplog) -> None:
    inp = write_rows(tmp_path / "in.csv", [{"id": "1"}])
    out = tmp_path / "out.csv"
    out.write_bytes(b"")
    with caplog.at_level(logging.WARNING):
        assert count_missing(inp, out) == 1
    assert "treating it as empty" in caplog.text


def test_loop_runs_until_done(tmp_path: Path, sleeps: list[float]) -> None:
    settings = _settings(tmp_path, n=5, limit=2)
    client = FakeLookupClient(default=_found)
    runs: list[BatchSettings] = []

    outcome = run_loop(
        settings, run_batch=_in_process_runner(client, runs), controller=LoopController()
    )

    assert outcome.state is LoopState.DONE
    assert outcome.batches == 3
    assert outcome.remaining == 0
    assert outcome.ok
    assert runs[0] == BatchSettings(settings.input_csv, settings.output_csv, 2)
    assert all(r["description"] for r in read_rows(settings.output_csv))
    # Two waits between three batches, one-second countdown ticks of 3s each.
    assert sleeps.count(1.0) == 6


def test_loop_with_nothing_to_do_never_runs_a_batch(tmp_path: Path) -> None:
    settings = _settings(tmp_path, n=2)
    write_rows(settings.output_csv, [{"id": "1", "description": "a"}, {"id": "2", "description": "b"}])

    def _never(_settings: BatchSettings) -> int:
        raise AssertionError("no batch expected")

    outcome = run_loop(settings, run_batch=_never, controller=LoopController())
    assert outcome.state is LoopState.DONE
    assert outcome.batches == 0


def test_interrupt_during_batch_stops_after_it_persists(tmp_path: Path, sleeps: list[float]) -> None:
    settings = _settings(tmp_path, n=6, limit=2)
    client = FakeLookupClient(default=_found)
    controller = LoopController()
    runs: list[BatchSettings] = []

    def _run(batch: BatchSettings) -> int:
        runs.append(batch)
        assert controller.batch_running
        controller.request_stop()
        run_enrich_batch(batch, client=client)
        return 0

    outcome = run_loop(settings, run_batch=_run, controller=controller)

    assert outcome.state is LoopState.CANCELLED
    assert outcome.ok
    assert len(runs) == 1
    rows = read_rows(settings.output_csv)
    assert len(rows) == 6
    assert [r["description"] for r in rows[:2]] == ["About 1", "About 2"]
    assert all(r["primaryName"] == r["id"] for r in rows[:2])
    assert all(r["description"] == "" for r in rows[2:])


def test_interrupt_while_idle_stops_before_next_batch(tmp_path: Path) -> None:
    settings = _settings(tmp_path)
    controller = LoopController()
    controller.request_stop()

    def _never(_settings: BatchSettings) -> int:
        raise AssertionError("no batch expected")

    outcome = run_loop(settings, run_batch=_never, controller=controller)
    assert outcome.state is LoopState.CANCELLED
    assert not settings.output_csv.exists()


def test_interrupt_during_wait_skips_next_batch(tmp_path: Path, monkeypatch) -> None:
    settings = _settings(tmp_path, n=5, limit=2)
    client = FakeLookupClient(default=_found)
    controller = LoopController()
    runs: list[BatchSettings] = []
    ticks: list[float] = []

    def fake_sleep(s: float) -> None:
        ticks.append(s)
        if s == 1:
            controller.request_stop()

    monkeypatch.setattr("time.sleep", fake_sleep)

    outcome = run_loop(settings, run_batch=_in_process_runner(client, runs), controller=controller)
    assert outcome.state is LoopState.CANCELLED
    assert len(runs) == 1
    assert ticks.count(1) == 1


def test_failed_batch_stops_loop(tmp_path: Path) -> None:
    settings = _settings(tmp_path)
    calls = {"n": 0}

    def _fail(_settings: BatchSettings) -> int:
        calls["n"] += 1
        return 3

    outcome = run_loop(settings, run_batch=_fail, controller=LoopController())
    assert outcome.state is LoopState.CANCELLED
    assert outcome.failed_exit_code == 3
    assert not outcome.ok
    assert calls["n"] == 1


def test_no_progress_is_reported(tmp_path: Path, monkeypatch, caplog) -> None:
    settings = _settings(tmp_path, n=2)
    controller = LoopController()
    monkeypatch.setattr("time.sleep", lambda s: controller.request_stop())

    with caplog.at_level(logging.WARNING):
        outcome = run_loop(settings, run_batch=lambda _s: 0, controller=controller)

    assert outcome.state is LoopState.CANCELLED
    assert "no progress" in caplog.text


def test_missing_input_raises(tmp_path: Path) -> None:
    settings = LoopSettings(input_csv=tmp_path / "nope.csv", output_csv=tmp_path / "out.csv")
    with pytest.raises(InputNotFoundError):
        run_loop(settings, run_batch=lambda _s: 0, controller=LoopController())


def test_build_enrich_command() -> None:
    cmd = build_enrich_command(BatchSettings(Path("a.csv"), Path("b.csv"), 10), debug=True)
    assert cmd[:4] == [sys.executable, "-m", "boardgame_catalog_builder", "enrich"]
    assert "--input=a.csv" in cmd
    assert "--output=b.csv" in cmd
    assert "--limit=10" in cmd
    assert cmd[-1] == "--debug"


def test_subprocess_runs_in_its_own_process_group(monkeypatch) -> None:
    seen: dict[str, object] = {}

    class Done:
        returncode = 2

    def fake_run(cmd, **kwargs):
        seen["cmd"] = cmd
        seen.update(kwargs)
        return Done()

    monkeypatch.setattr("subprocess.run", fake_run)

    code = run_batch_subprocess(BatchSettings(Path("a.csv"), Path("b.csv"), 4))
    assert code == 2
    assert seen.get("start_new_session") is True or "creationflags" in seen
    assert "--limit=4" in seen["cmd"]


def test_build_enrich_command_forwards_logs_dir() -> None:
    cmd = build_enrich_command(BatchSettings(Path("a.csv"), Path("b.csv"), 1), logs_dir=Path("L"))
    assert "--logs-dir=L" in cmd
    assert "--debug" not in cmd


def test_batch_child_process_writes_full_output(tmp_path: Path, monkeypatch) -> None:
    from boardgame_catalog_builder.schema import ENRICH_FIELDS

    project_root = Path(__file__).resolve().parent.parent
    monkeypatch.setenv("PYTHONPATH", str(project_root), prepend=os.pathsep)
    inp = write_rows(
        tmp_path / "in.csv",
        [{"id": "1", "name": "Alpha"}, {"id": "2", "name": "Beta"}, {"id": "", "name": "NoId"}],
    )
    out = tmp_path / "out" / "enriched.csv"
    logs = tmp_path / "logs"

    # limit=0 never reaches the network.
    code = run_batch_subprocess(BatchSettings(inp, out, 0), logs_dir=logs)

    assert code == 0
    rows = read_rows(out)
    assert [r["name"] for r in rows] == ["Alpha", "Beta", "NoId"]
    for field in ENRICH_FIELDS:
        assert field in rows[0]
    assert any(logs.glob("log-*-enrich.log"))


def test_controller_distinguishes_idle_and_running() -> None:
    c = LoopController()
    c.batch_running = True
    c.request_stop()
    assert c.stop_after_batch and not c.stop_requested

    c2 = LoopController()
    c2.request_stop()
    assert c2.stop_requested and not c2.stop_after_batch
