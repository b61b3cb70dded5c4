from __future__ import annotations

import logging
import sqlite3
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

from src.models import Results

SCHEMA_PATH = Path(__file__).with_name("schema.sql")

INSERT_LOGS_SQL = (
    "INSERT INTO logs (ts, node_id, rev_id, parent_ids, author, tags, branch, "
    "diffstat, files, graph_node, repo_path) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)"
)
INSERT_ERRS_SQL = "INSERT INTO errs (ts, err, repo_path) VALUES (?, ?, ?)"

_TRANSIENT_MARKERS = ("locked", "busy")


class PersistError(Exception):
    def __init__(self, repo: str, message: str) -> None:
        self.repo = repo
        super().__init__(f"persisting {repo}: {message}")


class FifoGate:
    """Single-slot lock that admits waiters in arrival order."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._next_ticket = 0
        self._serving = 0
        self._abandoned: set[int] = set()

    def __enter__(self) -> FifoGate:
        with self._cond:
            ticket = self._next_ticket
            self._next_ticket += 1
            try:
                while ticket != self._serving:
                    self._cond.wait()
            except BaseException:
                # an interrupted waiter must not hold up the tickets behind it
                if ticket == self._serving:
                    self._advance()
                else:
                    self._abandoned.add(ticket)
                raise
        return self

    def __exit__(self, *exc_info: Any) -> None:
        with self._cond:
            self._advance()

    def _advance(self) -> None:
        self._serving += 1
        while self._serving in self._abandoned:
            self._abandoned.remove(self._serving)
            self._serving += 1
        self._cond.notify_all()


def open_database(db_path: str | Path) -> sqlite3.Connection:
    # Autocommit mode; transactions are opened explicitly with BEGIN.
    conn = sqlite3.connect(str(db_path), isolation_level=None, check_same_thread=False)
    conn.execute("PRAGMA busy_timeout = 5000")
    return conn


def migrate(conn: sqlite3.Connection, sql_path: str | Path | None = None) -> None:
    script = Path(sql_path or SCHEMA_PATH).read_text(encoding="utf-8")
    statements = [part.strip() for part in script.split(";") if part.strip()]
    conn.execute("BEGIN")
    try:
        for statement in statements:
            conn.execute(statement)
    except sqlite3.Error:
        conn.execute("ROLLBACK")
        raise
    conn.execute("COMMIT")


class Store:
    def __init__(
        self,
        conn: sqlite3.Connection,
        logger: logging.Logger | None = None,
        retries: int = 3,
        retry_delay: float = 0.5,
    ) -> None:
        self.conn = conn
        self.logger = logger or logging.getLogger(__name__)
        self.retries = retries
        self.retry_delay = retry_delay
        self.gate = FifoGate()

    def persist(self, results: Results) -> None:
        repo = results.repo
        with self.gate:
            attempt = 0
            while True:
                try:
                    self._write(results)
                    return
                except sqlite3.OperationalError as exc:
                    if attempt >= self.retries or not _is_transient(exc):
                        raise PersistError(repo, str(exc)) from exc
                    attempt += 1
                    self.logger.info(
                        "transient storage error for %s, retry %d of %d: %s",
                        repo,
                        attempt,
                        self.retries,
                        exc,
                    )
                    time.sleep(self.retry_delay)
                except sqlite3.Error as exc:
                    raise PersistError(repo, str(exc)) from exc

    def _write(self, results: Results) -> None:
        self.logger.debug(
            "persisting %s: %d records, %d errors",
            results.repo,
            len(results.records),
            len(results.errors),
        )
        with self._transaction() as wrote:
            if results.records:
                self.conn.executemany(
                    INSERT_LOGS_SQL, [record.as_row() for record in results.records]
                )
                wrote.append("logs")
            if results.errors:
                self.conn.executemany(
                    INSERT_ERRS_SQL, [event.as_row() for event in results.errors]
                )
                wrote.append("errs")

    @contextmanager
    def _transaction(self) -> Iterator[list[str]]:
        wrote: list[str] = []
        self.conn.execute("BEGIN")
        try:
            yield wrote
            if wrote:
                self.conn.execute("COMMIT")
                return
        except BaseException:
            if self.conn.in_transaction:
                self.conn.execute("ROLLBACK")
            raise
        self.conn.execute("ROLLBACK")


def _is_transient(exc: sqlite3.OperationalError) -> bool:
    message = str(exc).lower()
    return any(marker in message for marker in _TRANSIENT_MARKERS)
