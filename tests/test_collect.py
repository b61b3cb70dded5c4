from __future__ import annotations

import threading
import time

import pytest

from src.collect import CollectionService
from src.models import LogRecord, Results


def _record(repo: str) -> LogRecord:
    return LogRecord(
        ts="2022-06-10 23:43:47 +0000",
        node_id=f"node-{repo}",
        rev_id="0",
        parent_ids="",
        author="Some User <some.user@email.com>",
        tags="tip",
        branch="default",
        diffstat="1: +1/-0",
        files="hi.txt",
        graph_node="@",
        repo_path=repo,
    )


class TrackingObtainer:
    def __init__(self, delay: float = 0.0) -> None:
        self.delay = delay
        self.started: list[str] = []
        self.active = 0
        self.peak = 0
        self._lock = threading.Lock()

    def obtain(self, repo: str) -> Results:
        with self._lock:
            self.started.append(repo)
            self.active += 1
            self.peak = max(self.peak, self.active)
        time.sleep(self.delay)
        return Results(repo=repo, records=[_record(repo)])

    def done(self) -> None:
        with self._lock:
            self.active -= 1


class TrackingPersister:
    def __init__(self, obtainer: TrackingObtainer, fail_for: set[str] | None = None) -> None:
        self.obtainer = obtainer
        self.fail_for = fail_for or set()
        self.persisted: list[Results] = []
        self._lock = threading.Lock()

    def persist(self, results: Results) -> None:
        # the pipeline holds its slot until persist returns
        self.obtainer.done()
        if results.repo in self.fail_for:
            raise RuntimeError(f"storage unavailable for {results.repo}")
        with self._lock:
            self.persisted.append(results)


def test_workers_must_be_positive() -> None:
    obtainer = TrackingObtainer()
    with pytest.raises(ValueError, match="at least 1"):
        CollectionService(obtainer, TrackingPersister(obtainer), workers=0)


def test_pool_bounds_concurrency_and_completes_every_repo() -> None:
    obtainer = TrackingObtainer(delay=0.02)
    persister = TrackingPersister(obtainer)
    repos = [f"/repos/r{idx}" for idx in range(12)]

    with CollectionService(obtainer, persister, workers=3) as service:
        service.collect(repos)
        summary = service.wait()

    assert obtainer.peak <= 3
    assert sorted(r.repo for r in persister.persisted) == sorted(repos)
    assert len(persister.persisted) == len(repos)
    assert summary.submitted == 12
    assert summary.completed == 12
    assert summary.records == 12
    assert summary.persist_failures == ()
    assert summary.ok


def test_single_worker_follows_list_order() -> None:
    obtainer = TrackingObtainer()
    persister = TrackingPersister(obtainer)
    repos = ["/repos/c", "/repos/a", "/repos/b"]

    with CollectionService(obtainer, persister, workers=1) as service:
        service.collect(repos)
        service.wait()

    assert obtainer.started == repos
    assert [r.repo for r in persister.persisted] == repos


def test_collect_blocks_when_pool_is_full() -> None:
    release = threading.Event()
    started: list[str] = []

    class BlockingObtainer:
        def obtain(self, repo: str) -> Results:
            started.append(repo)
            release.wait(5)
            return Results(repo=repo)

    class NullPersister:
        def persist(self, results: Results) -> None:
            return None

    service = CollectionService(BlockingObtainer(), NullPersister(), workers=1)
    submitter = threading.Thread(target=service.collect, args=(["/repos/a", "/repos/b"],))
    submitter.start()
    time.sleep(0.1)

    assert submitter.is_alive()
    assert started == ["/repos/a"]

    release.set()
    submitter.join(5)
    summary = service.wait()
    service.close()

    assert not submitter.is_alive()
    assert started == ["/repos/a", "/repos/b"]
    assert summary.completed == 2


def test_persist_failure_is_recorded_not_raised() -> None:
    obtainer = TrackingObtainer()
    persister = TrackingPersister(obtainer, fail_for={"/repos/bad"})

    with CollectionService(obtainer, persister, workers=2) as service:
        service.collect(["/repos/good", "/repos/bad", "/repos/other"])
        summary = service.wait()

    assert summary.completed == 3
    assert summary.persist_failures == ("/repos/bad",)
    assert summary.records == 2
    assert not summary.ok


def test_obtain_exception_is_persisted_as_error_event() -> None:
    class ExplodingObtainer:
        def obtain(self, repo: str) -> Results:
            raise RuntimeError("queryer blew up")

    persisted: list[Results] = []

    class ListPersister:
        def persist(self, results: Results) -> None:
            persisted.append(results)

    with CollectionService(ExplodingObtainer(), ListPersister()) as service:
        service.collect(["/repos/x"])
        summary = service.wait()

    assert len(persisted) == 1
    assert persisted[0].records == []
    assert persisted[0].errors[0].path == "/repos/x"
    assert "queryer blew up" in str(persisted[0].errors[0].err)
    assert summary.errors == 1
    assert summary.ok


def test_wait_without_work_returns_empty_summary() -> None:
    obtainer = TrackingObtainer()
    with CollectionService(obtainer, TrackingPersister(obtainer)) as service:
        summary = service.wait()

    assert summary.submitted == 0
    assert summary.elapsed == 0.0
    assert summary.ok
