from __future__ import annotations

import logging
import threading
import time
from concurrent import futures
from typing import Any, Iterable, Protocol

from src.models import CollectionSummary, Results
from src.parse import error_event


class Obtainer(Protocol):
    def obtain(self, repo: str) -> Results: ...


class Persister(Protocol):
    def persist(self, results: Results) -> None: ...


class CollectionService:
    """Fan repositories out over a bounded pool of obtain-then-persist workers.

    ``collect`` blocks while every slot is busy; ``wait`` is the drain barrier
    and must be called before the process exits.
    """

    def __init__(
        self,
        obtainer: Obtainer,
        persister: Persister,
        workers: int = 1,
        logger: logging.Logger | None = None,
    ) -> None:
        if workers < 1:
            raise ValueError(f"workers must be at least 1, got {workers}")

        self.obtainer = obtainer
        self.persister = persister
        self.workers = workers
        self.logger = logger or logging.getLogger(__name__)

        self._slots = threading.BoundedSemaphore(workers)
        self._executor = futures.ThreadPoolExecutor(max_workers=workers, thread_name_prefix="collect")
        self._futures: list[futures.Future[None]] = []
        self._lock = threading.Lock()
        self._started: float | None = None
        self._submitted = 0
        self._completed = 0
        self._records = 0
        self._errors = 0
        self._persist_failures: list[str] = []

    def __enter__(self) -> CollectionService:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def collect(self, repos: Iterable[str]) -> None:
        repo_list = tuple(repos)
        if self._started is None:
            self._started = time.monotonic()

        for count, repo in enumerate(repo_list, start=1):
            self.logger.info("processing repo %d of %d: %r", count, len(repo_list), repo)
            self._slots.acquire()
            self.logger.info("pool worker %d started...", count)
            with self._lock:
                self._submitted += 1
            try:
                future = self._executor.submit(self._run, repo, count)
            except RuntimeError:
                self._slots.release()
                raise
            self._futures.append(future)

    def wait(self) -> CollectionSummary:
        futures.wait(self._futures)
        elapsed = time.monotonic() - self._started if self._started is not None else 0.0
        with self._lock:
            return CollectionSummary(
                submitted=self._submitted,
                completed=self._completed,
                records=self._records,
                errors=self._errors,
                persist_failures=tuple(self._persist_failures),
                elapsed=elapsed,
            )

    def close(self) -> None:
        self._executor.shutdown(wait=True)

    def _run(self, repo: str, count: int) -> None:
        try:
            try:
                results = self.obtainer.obtain(repo)
            except Exception as exc:
                results = Results(repo=repo, errors=[error_event(exc, repo, self.logger)])

            try:
                self.persister.persist(results)
            except Exception as exc:
                self.logger.error("ERROR in persisting logs for %s: %s", repo, exc)
                with self._lock:
                    self._persist_failures.append(repo)
            else:
                with self._lock:
                    self._records += len(results.records)
                    self._errors += len(results.errors)

            with self._lock:
                self._completed += 1
        finally:
            self._slots.release()

        self.logger.info("completed repo %d", count)
