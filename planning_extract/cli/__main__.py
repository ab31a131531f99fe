from __future__ import annotations

import argparse
import logging
import os
import sys
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import replace
from pathlib import Path
from typing import Any

import pandas as pd
import psycopg2
from dotenv import load_dotenv

from ..config.loader import DEFAULT_CONFIG_PATH, ConfigError, ExtractConfig, load_config
from ..db.row_source import DbRowSource
from ..logging.error_log import ErrorLogBuffer
from ..logging.init import log_summary, set_level, setup_logging
from ..services.dispatcher import Dispatcher
from ..services.extractor import PlanningExtractor
from ..services.naming import parse_dimensions
from ..services.orchestrator import ProcessingError, process_all
from ..services.summary import render_summary_line

"""CLI entry point: ``python -m planning_extract.cli``.

Flow: load ``.env`` -> load config -> connect -> run extracts -> SUMMARY line.

Exit codes: 0 every extract succeeded, 2 at least one extract failed,
1 fatal (configuration, connection, output directory).
"""

EXIT_SUCCESS_ALL = 0
EXIT_PARTIAL_FAILURE = 2
EXIT_FATAL = 1

INSPECT_ROWS = 3

Connect = Callable[[ExtractConfig], Any]


def _dsn(cfg: ExtractConfig) -> str:
    """Connection string, first match wins.

    1. ``DATABASE_URL`` / ``PGDSN`` (``.env`` is loaded with override)
    2. individual ``PGHOST`` / ``PGPORT`` / ``PGUSER`` / ``PGPASSWORD`` / ``PGDATABASE``
    3. the ``database`` section of the config
    """
    db = cfg.database
    dsn = os.getenv("DATABASE_URL") or os.getenv("PGDSN") or db.dsn
    if dsn:
        return dsn
    host = os.getenv("PGHOST", db.host or "localhost")
    port = os.getenv("PGPORT", str(db.port) if db.port else "5432")
    user = os.getenv("PGUSER", db.user or "postgres")
    password = os.getenv("PGPASSWORD", db.password or "")
    database = os.getenv("PGDATABASE", db.database or "postgres")
    dsn = f"host={host} port={port} user={user} dbname={database}"
    if password:
        dsn += f" password={password}"
    return dsn


def _psycopg2_connect(cfg: ExtractConfig) -> Any:
    conn = psycopg2.connect(_dsn(cfg))
    # extracts only read
    conn.set_session(readonly=True, autocommit=True)
    return conn


@contextmanager
def _db_connection(cfg: ExtractConfig, connect: Connect) -> Iterator[Any]:
    conn = connect(cfg)
    try:
        yield conn
    finally:
        conn.close()


def _load_env_file(path: Path, override: bool = True) -> None:
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="planning_extract", description="Planning application metadata extractor"
    )
    p.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="YAML run configuration")
    p.add_argument("--format", choices=["text", "xlsx"], help="Override the output format")
    p.add_argument("--output-dir", type=Path, help="Override the output directory")
    p.add_argument(
        "--dimensions",
        help="DIM[:MBR1~MBR2|:FILE][,DIM2...] dimensions (and top members) to extract",
    )
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument(
        "--inspect-data", action="store_true", help="Print headers & first rows of generated extracts then exit"
    )
    return p.parse_args(argv)


def _apply_overrides(cfg: ExtractConfig, args: argparse.Namespace) -> ExtractConfig:
    changes: dict[str, Any] = {}
    if args.format:
        changes["format"] = args.format
    if args.output_dir:
        changes["output_directory"] = args.output_dir
    if args.dimensions:
        dims, top = parse_dimensions(args.dimensions)
        changes["dimensions"] = dims
        changes["top_members"] = top
    return replace(cfg, **changes) if changes else cfg


def _read_extract(path: Path) -> dict[str, pd.DataFrame]:
    if path.suffix == ".xlsx":
        return pd.read_excel(path, sheet_name=None, nrows=INSPECT_ROWS, dtype=str)
    # separator is sniffed: outline extracts use commas, others may use tabs
    frame = pd.read_csv(path, nrows=INSPECT_ROWS, dtype=str, encoding="utf-8-sig", sep=None, engine="python")
    return {path.stem: frame}


def _inspect_data(cfg: ExtractConfig) -> int:
    directory = cfg.output_directory
    if not directory.exists():
        print(f"inspect: directory not found: {directory}")
        return EXIT_FATAL
    files = sorted(p for p in directory.iterdir() if p.name.endswith(("_Extract.csv", "_Extract.xlsx")))
    if not files:
        print("inspect: no extract files")
        return EXIT_SUCCESS_ALL
    for f in files:
        print(f"FILE: {f.name}")
        try:
            frames = _read_extract(f)
        except (ValueError, OSError, pd.errors.ParserError) as e:
            print(f"  read_error: {e}")
            continue
        for name, df in frames.items():
            print(f"  SHEET: {name} cols={list(df.columns)}")
            print("    sample_rows=", df.fillna("").to_dict(orient="records"))
    return EXIT_SUCCESS_ALL


def main(argv: list[str] | None = None, connect: Connect | None = None) -> int:
    logger = setup_logging()

    # only read sys.argv when called without arguments, so main([]) stays isolated
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    _load_env_file(Path(".env"), override=True)

    if args.debug:
        set_level(logging.DEBUG)
        logger.debug("debug mode enabled")

    try:
        cfg = _apply_overrides(load_config(args.config), args)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    if args.inspect_data:
        return _inspect_data(cfg)

    logger.info(f"Extracting metadata from application: {cfg.application}")
    try:
        with _db_connection(cfg, connect or _psycopg2_connect) as conn:
            extractor = PlanningExtractor(Dispatcher(DbRowSource(conn, cfg.queries)))
            result = process_all(cfg, extractor, error_log=ErrorLogBuffer())
    except ProcessingError as e:
        logger.error(f"processing: {e}")
        return EXIT_FATAL
    except psycopg2.Error as e:
        logger.error(f"database: {e}")
        return EXIT_FATAL

    log_summary(render_summary_line(result)[len("SUMMARY "):])

    if result.failed_steps > 0:
        return EXIT_PARTIAL_FAILURE
    return EXIT_SUCCESS_ALL


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
