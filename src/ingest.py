from __future__ import annotations

import logging
from typing import Protocol

from src.hg import InvocationError
from src.models import Results
from src.parse import error_event, parse_log_output


class LogQueryer(Protocol):
    def query_logs(self, repo: str) -> str: ...


class LogReader:
    """Obtain step: query one repository and parse whatever came back."""

    def __init__(
        self,
        queryer: LogQueryer,
        logger: logging.Logger | None = None,
        strict: bool = False,
    ) -> None:
        self.queryer = queryer
        self.logger = logger or logging.getLogger(__name__)
        self.strict = strict

    def obtain(self, repo: str) -> Results:
        failure = None
        try:
            raw = self.queryer.query_logs(repo)
        except InvocationError as exc:
            failure = error_event(exc, repo, self.logger)
            raw = ""

        results = parse_log_output(raw, repo, logger=self.logger, strict=self.strict)
        if failure is not None:
            results.errors.insert(0, failure)
        return results
