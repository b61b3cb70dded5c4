from __future__ import annotations

import argparse
import sqlite3
from typing import Sequence

from src.collect import CollectionService
from src.config import RunConfig, build_repo_list, load_run_config, merge_overrides
from src.hg import HgLogQuery
from src.ingest import LogReader
from src.logging_setup import create_run_logger
from src.store import Store, migrate, open_database


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Collect Mercurial history from many repositories into SQLite"
    )
    parser.add_argument("-D", dest="debug", action="store_true", help="enable debug logging")
    parser.add_argument(
        "-R",
        dest="repos_dir",
        default=None,
        help="parent directory containing repos in separate child directories (if set, -r is ignored)",
    )
    parser.add_argument(
        "-r", dest="repo", default=None, help="a single repo directory (ignored if -R is set)"
    )
    parser.add_argument(
        "-d", dest="db_path", default=None, help="file path for SQLite database file of the results"
    )
    parser.add_argument(
        "-n",
        dest="workers",
        type=int,
        default=None,
        help="parallel workers to process repo directories (only used with -R)",
    )
    parser.add_argument("--config", default=None, help="YAML run config; flags override it")
    parser.add_argument(
        "--timeout", type=float, default=None, help="seconds before an hg log call is abandoned"
    )
    parser.add_argument(
        "--retries", type=int, default=None, help="retries for transient storage errors"
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="record short log rows as errors instead of dropping them",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_run_config(args.config) if args.config else RunConfig()
        config = merge_overrides(
            config,
            repos_dir=args.repos_dir,
            repo=args.repo,
            db_path=args.db_path,
            workers=args.workers,
            timeout=args.timeout,
            persist_retries=args.retries,
            debug=args.debug or None,
            strict=args.strict or None,
        )
        if not config.db_path:
            raise ValueError("no database file specified (-d)")
        repos, workers = build_repo_list(config)
    except (FileNotFoundError, ValueError) as exc:
        print(f"Configuration error: {exc}")
        return 1

    logger = create_run_logger(debug=config.debug)
    logger.info("using dbFile: %r", config.db_path)

    try:
        conn = open_database(config.db_path)
        migrate(conn)
    except (OSError, sqlite3.Error) as exc:
        print(f"Configuration error: database setup failed: {exc}")
        return 1

    store = Store(
        conn,
        logger=logger,
        retries=config.persist_retries,
        retry_delay=config.retry_delay,
    )
    reader = LogReader(
        HgLogQuery(binary=config.hg_binary, timeout=config.timeout, logger=logger),
        logger=logger,
        strict=config.strict,
    )

    try:
        with CollectionService(reader, store, workers=workers, logger=logger) as service:
            logger.info("STARTING. Worker pool size: %d", service.workers)
            service.collect(repos)
            summary = service.wait()
    finally:
        conn.close()

    logger.info("DONE. Time elapsed: %.3fs", summary.elapsed)
    print(f"Processed repos: {summary.completed} of {summary.submitted}")
    print(f"Total records: {summary.records}")
    print(f"Total error events: {summary.errors}")
    for repo in summary.persist_failures:
        print(f"  persist failed: {repo}")
    return 0 if summary.ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
