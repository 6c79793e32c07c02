"""Command-line interface for the board game catalog builder."""

from __future__ import annotations

import argparse
import logging
import os
import shlex
import sys
from datetime import datetime
from pathlib import Path

from .config import ENRICH, INGEST, LOOP, SERVER
from .pipelines.context import (
    BatchSettings,
    IngestSettings,
    InputNotFoundError,
    LoopSettings,
)
from .utils import ProjectPaths, lenient_int


def setup_logging(log_file: Path) -> None:
    """Configure logging to both console and file."""
    log_file.parent.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(
        "%(asctime)s.%(msecs)03d - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )

    # File handler
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(logging.INFO)
    file_handler.setFormatter(formatter)

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(formatter)

    # Root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.INFO)
    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)

    # Silence verbose HTTP debug logs by default
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("requests").setLevel(logging.WARNING)

    logging.info(f"Logging to file: {log_file}")


def _common_paths() -> ProjectPaths:
    project_root = Path(__file__).resolve().parent.parent
    return ProjectPaths.from_root(project_root)


def _default_log_file(*, command_name: str, logs_dir: Path) -> Path:
    logs_dir.mkdir(parents=True, exist_ok=True)

    now = datetime.now()
    stamp = now.strftime("%Y%m%d-%H%M%S") + f".{now.microsecond // 1000:03d}"
    candidate = logs_dir / f"log-{stamp}-{command_name}.log"
    if not candidate.exists():
        return candidate

    for i in range(2, 1000):
        p = logs_dir / f"log-{stamp}-{command_name}-{i}.log"
        if not p.exists():
            return p
    return logs_dir / f"log-{stamp}-{command_name}-{os.getpid()}.log"


def _setup_logging_from_args(
    paths: ProjectPaths, args: argparse.Namespace, *, command_name: str
) -> None:
    logs_dir = args.logs_dir or paths.logs_dir
    setup_logging(args.log_file or _default_log_file(command_name=command_name, logs_dir=logs_dir))
    if args.debug:
        root_logger = logging.getLogger()
        root_logger.setLevel(logging.DEBUG)
        for handler in root_logger.handlers:
            handler.setLevel(logging.DEBUG)
        logging.getLogger("urllib3").setLevel(logging.DEBUG)

    argv = " ".join(shlex.quote(a) for a in sys.argv)
    logging.info(f"Invocation: {argv}")


def _command_enrich(args: argparse.Namespace) -> None:
    from .pipelines.enrich_pipeline import run_enrich_batch

    paths = _common_paths()
    _setup_logging_from_args(paths, args, command_name="enrich")
    settings = BatchSettings(
        input_csv=args.input or paths.default_input,
        output_csv=args.output or paths.default_output,
        limit=args.limit,
    )
    try:
        run_enrich_batch(settings)
    except InputNotFoundError as e:
        logging.error(str(e))
        raise SystemExit(str(e)) from e
    logging.info("Done.")


def _command_loop(args: argparse.Namespace) -> None:
    from .pipelines.loop_pipeline import run_loop

    paths = _common_paths()
    _setup_logging_from_args(paths, args, command_name="loop")
    settings = LoopSettings(
        input_csv=args.input or paths.default_input,
        output_csv=args.output or paths.default_output,
        limit=args.limit,
        interval_s=args.interval,
        debug=bool(args.debug),
        logs_dir=args.logs_dir,
    )
    try:
        outcome = run_loop(settings)
    except InputNotFoundError as e:
        logging.error(str(e))
        raise SystemExit(str(e)) from e
    if not outcome.ok:
        raise SystemExit(1)


def _command_ingest(args: argparse.Namespace) -> None:
    from .pipelines.ingest_pipeline import run_ingest

    paths = _common_paths()
    _setup_logging_from_args(paths, args, command_name="ingest")
    settings = IngestSettings(
        input_csv=args.input or paths.default_output,
        collection=args.collection,
        limit=args.limit,
        embed=bool(args.embed),
        embedding_model=args.embedding_model,
        chroma_url=os.environ.get(INGEST.chroma_url_env, INGEST.chroma_url_default),
        ollama_url=os.environ.get(INGEST.ollama_url_env, INGEST.ollama_url_default),
    )
    try:
        run_ingest(settings)
    except InputNotFoundError as e:
        logging.error(str(e))
        raise SystemExit(str(e)) from e


def _command_serve(args: argparse.Namespace) -> None:
    from .server import serve

    paths = _common_paths()
    _setup_logging_from_args(paths, args, command_name="serve")
    serve(host=args.host, port=args.port)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Enrich a board game CSV from BoardGameGeek and load it into a vector store"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p_common = argparse.ArgumentParser(add_help=False)
    p_common.add_argument(
        "--log-file",
        type=Path,
        help="Log file path (default: data/logs/log-<timestamp>-<command>.log)",
    )
    p_common.add_argument(
        "--logs-dir",
        type=Path,
        help="Override logs directory (default: data/logs)",
    )
    p_common.add_argument(
        "--debug", action="store_true", help="Enable DEBUG logging (default: INFO)"
    )

    p_enrich = sub.add_parser(
        "enrich",
        help="Enrich the next batch of rows still missing BGG data (resumable)",
        parents=[p_common],
    )
    p_enrich.add_argument(
        "--input", type=Path, help=f"Input CSV (default: data/{ENRICH.input_filename})"
    )
    p_enrich.add_argument(
        "--output", type=Path, help=f"Output CSV (default: data/{ENRICH.output_filename})"
    )
    p_enrich.add_argument(
        "--limit",
        type=lenient_int(ENRICH.default_limit, minimum=0, clamp=True),
        default=ENRICH.default_limit,
        help=f"Max rows to fetch in this batch (default: {ENRICH.default_limit})",
    )
    p_enrich.set_defaults(_fn=_command_enrich)

    p_loop = sub.add_parser(
        "loop",
        help="Run enrich batches until the dataset is fully enriched (Ctrl-C stops safely)",
        parents=[p_common],
    )
    p_loop.add_argument(
        "--input", type=Path, help=f"Input CSV (default: data/{ENRICH.input_filename})"
    )
    p_loop.add_argument(
        "--output", type=Path, help=f"Output CSV (default: data/{ENRICH.output_filename})"
    )
    p_loop.add_argument(
        "--limit",
        type=lenient_int(LOOP.default_limit, minimum=1, clamp=False),
        default=LOOP.default_limit,
        help=f"Rows per batch (default: {LOOP.default_limit})",
    )
    p_loop.add_argument(
        "--interval",
        type=lenient_int(LOOP.default_interval_s, minimum=1, clamp=False),
        default=LOOP.default_interval_s,
        help=f"Seconds to wait between batches (default: {LOOP.default_interval_s})",
    )
    p_loop.set_defaults(_fn=_command_loop)

    p_ingest = sub.add_parser(
        "ingest",
        help="Upsert the enriched CSV into a Chroma collection",
        parents=[p_common],
    )
    p_ingest.add_argument(
        "--input", type=Path, help=f"Enriched CSV (default: data/{ENRICH.output_filename})"
    )
    p_ingest.add_argument(
        "--collection",
        default=INGEST.collection,
        help=f"Collection name (default: {INGEST.collection})",
    )
    p_ingest.add_argument(
        "--limit",
        type=lenient_int(0, minimum=0, clamp=True),
        default=0,
        help="Only ingest the first N rows (default: all)",
    )
    p_ingest.add_argument(
        "--embed",
        action="store_true",
        help="Compute embeddings with Ollama instead of the collection default",
    )
    p_ingest.add_argument(
        "--embedding-model",
        default=INGEST.embedding_model,
        help=f"Ollama embedding model (default: {INGEST.embedding_model})",
    )
    p_ingest.set_defaults(_fn=_command_ingest)

    p_serve = sub.add_parser("serve", help="Run the health-check HTTP API", parents=[p_common])
    p_serve.add_argument("--host", default=SERVER.host, help=f"Bind host (default: {SERVER.host})")
    p_serve.add_argument(
        "--port", type=int, default=SERVER.port, help=f"Bind port (default: {SERVER.port})"
    )
    p_serve.set_defaults(_fn=_command_serve)

    return parser


def main(argv: list[str] | None = None) -> None:
    argv = list(sys.argv[1:] if argv is None else argv)
    if not argv:
        raise SystemExit(
            "Missing command. Use one of: enrich, loop, ingest, serve. "
            "Run `python run.py --help` for usage."
        )

    ns = build_parser().parse_args(argv)
    ns._fn(ns)
    return


if __name__ == "__main__":
    main()
