from __future__ import annotations

from dataclasses import dataclass, field

RepoList = tuple[str, ...]


@dataclass(frozen=True)
class LogRecord:
    ts: str
    node_id: str
    rev_id: str
    parent_ids: str
    author: str
    tags: str
    branch: str
    diffstat: str
    files: str
    graph_node: str
    repo_path: str

    def as_row(self) -> tuple[str, ...]:
        return (
            self.ts,
            self.node_id,
            self.rev_id,
            self.parent_ids,
            self.author,
            self.tags,
            self.branch,
            self.diffstat,
            self.files,
            self.graph_node,
            self.repo_path,
        )


@dataclass(frozen=True)
class ErrorEvent:
    ts: str
    err: BaseException
    path: str

    def as_row(self) -> tuple[str, str, str]:
        return (self.ts, str(self.err), self.path)


@dataclass
class Results:
    repo: str = ""
    records: list[LogRecord] = field(default_factory=list)
    errors: list[ErrorEvent] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.records and not self.errors


@dataclass(frozen=True)
class CollectionSummary:
    submitted: int
    completed: int
    records: int
    errors: int
    persist_failures: tuple[str, ...]
    elapsed: float

    @property
    def ok(self) -> bool:
        return not self.persist_failures and self.completed == self.submitted
