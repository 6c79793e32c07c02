from __future__ import annotations

import logging
import os
import signal
import subprocess
import sys
import time
from dataclasses import dataclass
from enum import Enum
from functools import partial
from pathlib import Path
from typing import Any, Callable

from ..schema import COMPLETION_FIELD
from ..utils.utilities import read_csv, row_ids
from .context import BatchSettings, InputNotFoundError, LoopSettings


class LoopState(Enum):
    IDLE = "idle"
    CHECK_REMAINING = "check_remaining"
    RUN_BATCH = "run_batch"
    WAIT = "wait"
    DONE = "done"
    CANCELLED = "cancelled"


@dataclass
class LoopOutcome:
    state: LoopState
    batches: int = 0
    remaining: int = 0
    failed_exit_code: int | None = None

    @property
    def ok(self) -> bool:
        return self.failed_exit_code is None


class LoopController:
    """
    Cooperative cancellation for the enrichment loop.

    An interrupt while idle stops the loop before the next batch. An interrupt while a batch
    is running only marks the loop to stop once that batch has exited (and written its
    output); the batch itself is never cut short.
    """

    def __init__(self) -> None:
        self.stop_requested = False
        self.stop_after_batch = False
        self.batch_running = False
        self._previous_handler: Any = None

    def request_stop(self) -> None:
        if self.batch_running:
            if self.stop_after_batch:
                logging.info("Stop already pending; waiting for the current batch to finish.")
                return
            logging.info(
                "Interrupt received. Will stop after current batch completes and writes output..."
            )
            self.stop_after_batch = True
        else:
            logging.info("Interrupt received. Stopping before next batch. Progress is saved.")
            self.stop_requested = True

    def _handle_signal(self, signum: int, frame: object) -> None:
        sys.stdout.write("\n")
        self.request_stop()

    def install(self) -> None:
        self._previous_handler = signal.signal(signal.SIGINT, self._handle_signal)

    def restore(self) -> None:
        if self._previous_handler is not None:
            signal.signal(signal.SIGINT, self._previous_handler)
            self._previous_handler = None


def count_missing(input_csv: Path, output_csv: Path) -> int:
    """
    Count input ids whose output row (matched by id) has no description yet.

    Rows with an empty id are not counted: they can never be enriched.
    """
    inputs = read_csv(input_csv)
    described: dict[str, str] = {}
    if output_csv.exists():
        try:
            out = read_csv(output_csv)
        except Exception as e:
            logging.warning(
                f"Failed to read {output_csv} while counting remaining rows; "
                f"treating it as empty. ({type(e).__name__}: {e})"
            )
        else:
            if COMPLETION_FIELD in out.columns:
                described = dict(
                    zip(row_ids(out).tolist(), out[COMPLETION_FIELD].astype(str).str.strip())
                )

    missing = 0
    for rid in row_ids(inputs).tolist():
        if not rid:
            continue
        if not described.get(rid, ""):
            missing += 1
    return missing


def build_enrich_command(
    settings: BatchSettings, *, debug: bool = False, logs_dir: Path | None = None
) -> list[str]:
    cmd = [
        sys.executable,
        "-m",
        "boardgame_catalog_builder",
        "enrich",
        f"--input={settings.input_csv}",
        f"--output={settings.output_csv}",
        f"--limit={settings.limit}",
    ]
    if logs_dir is not None:
        cmd.append(f"--logs-dir={logs_dir}")
    if debug:
        cmd.append("--debug")
    return cmd


def run_batch_subprocess(
    settings: BatchSettings, *, debug: bool = False, logs_dir: Path | None = None
) -> int:
    """
    Run one `enrich` batch in a child process and return its exit code.

    The child gets its own process group so a terminal Ctrl-C only reaches the loop, which
    then lets the batch finish.
    """
    kwargs: dict[str, Any] = {"env": os.environ.copy()}
    if os.name == "nt":
        kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
    else:
        kwargs["start_new_session"] = True
    cmd = build_enrich_command(settings, debug=debug, logs_dir=logs_dir)
    logging.debug(f"Launching batch: {' '.join(cmd)}")
    return subprocess.run(cmd, check=False, **kwargs).returncode


def wait_with_countdown(interval_s: int, controller: LoopController) -> None:
    total = max(1, int(interval_s))
    for remaining in range(total, 0, -1):
        if controller.stop_requested:
            break
        sys.stdout.write(f"Next batch in {remaining}s...\r")
        sys.stdout.flush()
        time.sleep(1)
    sys.stdout.write("\n")
    sys.stdout.flush()


def run_loop(
    settings: LoopSettings,
    *,
    run_batch: Callable[[BatchSettings], int] | None = None,
    controller: LoopController | None = None,
) -> LoopOutcome:
    """
    Run enrichment batches until every row with an id is enriched, or until cancelled.

    All progress state is re-read from the CSV files before and after each batch; nothing is
    carried over in memory between batches.
    """
    input_csv = Path(settings.input_csv)
    output_csv = Path(settings.output_csv)
    if not input_csv.exists():
        raise InputNotFoundError(f"Input CSV not found: {input_csv}")

    batch_settings = settings.batch()
    runner = run_batch or partial(
        run_batch_subprocess, debug=settings.debug, logs_dir=settings.logs_dir
    )
    owns_controller = controller is None
    ctl = controller or LoopController()
    if owns_controller:
        ctl.install()

    logging.info(
        f"Loop enrich starting with limit={settings.limit}, interval={settings.interval_s}s"
    )
    logging.info(f"Input: {input_csv}")
    logging.info(f"Output: {output_csv}")

    outcome = LoopOutcome(state=LoopState.IDLE)
    remaining_before = 0
    try:
        while outcome.state not in (LoopState.DONE, LoopState.CANCELLED):
            if outcome.state is LoopState.IDLE:
                outcome.state = LoopState.CHECK_REMAINING

            elif outcome.state is LoopState.CHECK_REMAINING:
                if ctl.stop_requested:
                    outcome.state = LoopState.CANCELLED
                    continue
                remaining_before = count_missing(input_csv, output_csv)
                outcome.remaining = remaining_before
                if remaining_before == 0:
                    logging.info("All rows are enriched. Nothing to do.")
                    outcome.state = LoopState.DONE
                    continue
                logging.info(f"Remaining to enrich: {remaining_before}")
                outcome.state = LoopState.RUN_BATCH

            elif outcome.state is LoopState.RUN_BATCH:
                ctl.batch_running = True
                try:
                    code = runner(batch_settings)
                finally:
                    ctl.batch_running = False
                outcome.batches += 1
                if code != 0:
                    logging.error(f"Enrich batch exited with code {code}. Stopping loop.")
                    outcome.failed_exit_code = code
                    outcome.state = LoopState.CANCELLED
                    continue
                if ctl.stop_after_batch:
                    logging.info("Stopping as requested after the batch completed.")
                    outcome.state = LoopState.CANCELLED
                    continue

                remaining_after = count_missing(input_csv, output_csv)
                outcome.remaining = remaining_after
                logging.info(f"Remaining after batch: {remaining_after}")
                if remaining_after == 0:
                    logging.info("Enrichment complete. Exiting loop.")
                    outcome.state = LoopState.DONE
                    continue
                if remaining_after >= remaining_before:
                    logging.warning(f"Batch made no progress (remaining={remaining_after}).")
                outcome.state = LoopState.WAIT

            elif outcome.state is LoopState.WAIT:
                wait_with_countdown(settings.interval_s, ctl)
                if ctl.stop_requested:
                    logging.info("Stopping before starting the next batch. Progress is saved.")
                    outcome.state = LoopState.CANCELLED
                else:
                    outcome.state = LoopState.CHECK_REMAINING
    finally:
        if owns_controller:
            ctl.restore()

    logging.info(
        f"✔ Loop enrich finished: state={outcome.state.value} batches={outcome.batches} "
        f"remaining={outcome.remaining}"
    )
    return outcome
