from __future__ import annotations

import csv
import logging
from datetime import datetime, timezone

from src.models import ErrorEvent, LogRecord, Results

QUOTE = "'"
FIELD_COUNT = 10


class ShortRowError(ValueError):
    pass


def error_event(err: BaseException, repo: str, logger: logging.Logger | None = None) -> ErrorEvent:
    (logger or logging.getLogger(__name__)).info("ERROR EVENT LOGGED - %s", err)
    return ErrorEvent(ts=datetime.now(timezone.utc).isoformat(), err=err, path=repo)


def parse_log_output(
    raw: str,
    repo: str,
    logger: logging.Logger | None = None,
    strict: bool = False,
) -> Results:
    """Split hg template output into log records and captured parse errors.

    Rows with fewer than ten fields are dropped without an error event unless
    ``strict`` is set; blank lines always are.
    """
    log = logger or logging.getLogger(__name__)
    results = Results(repo=repo)

    for lineno, line in enumerate(raw.split("\n"), start=1):
        if line == QUOTE:
            continue

        # hg puts the closing quote of one entry at the start of the next line
        clean = line.strip(QUOTE)
        try:
            row = _read_row(clean)
        except csv.Error as exc:
            results.errors.append(error_event(exc, repo, log))
            continue

        if len(row) < FIELD_COUNT:
            if clean.strip():
                if strict:
                    err = ShortRowError(
                        f"line {lineno}: expected {FIELD_COUNT} fields, got {len(row)}"
                    )
                    results.errors.append(error_event(err, repo, log))
                else:
                    log.warning(
                        "dropping line %d of %s: %d fields", lineno, repo, len(row)
                    )
            continue

        results.records.append(_to_record(row, repo))

    log.debug("parsed %s: %d records, %d errors", repo, len(results.records), len(results.errors))
    return results


def _read_row(line: str) -> list[str]:
    reader = csv.reader([line], delimiter="\t", strict=True)
    return next(reader, [])


def _to_record(row: list[str], repo: str) -> LogRecord:
    return LogRecord(
        ts=row[0],
        node_id=row[1],
        rev_id=row[2],
        parent_ids=row[3],
        author=row[4],
        tags=row[5],
        branch=row[6],
        diffstat=row[7],
        files=row[8],
        graph_node=row[9],
        repo_path=repo,
    )
