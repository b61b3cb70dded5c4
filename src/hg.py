from __future__ import annotations

import logging
import shutil
import subprocess

# Ten tab-separated fields per changeset. The surrounding single quotes are
# emitted literally by hg and are stripped again by the parser.
LOG_TEMPLATE = (
    r"'{date|isodatesec}\t{node}\t{rev}\t{parents}\t{author}\t{tags}"
    r"\t{branch}\t{diffstat}\t{files}\t{graphnode}\n'"
)

DEFAULT_TIMEOUT = 300.0


class InvocationError(Exception):
    def __init__(self, repo: str, message: str, stderr: str = "") -> None:
        self.repo = repo
        self.stderr = stderr
        detail = f"{message} - {stderr.strip()}" if stderr.strip() else message
        super().__init__(detail)


class HgLogQuery:
    def __init__(
        self,
        binary: str = "hg",
        timeout: float | None = DEFAULT_TIMEOUT,
        logger: logging.Logger | None = None,
    ) -> None:
        self.binary = binary
        self.timeout = timeout
        self.logger = logger or logging.getLogger(__name__)

    def build_command(self, executable: str, repo: str) -> list[str]:
        return [executable, "log", repo, "--template", LOG_TEMPLATE]

    def query_logs(self, repo: str) -> str:
        executable = shutil.which(self.binary)
        if executable is None:
            raise InvocationError(repo, f"executable not found: {self.binary}")

        cmd = self.build_command(executable, repo)
        try:
            completed = subprocess.run(
                cmd,
                check=False,
                capture_output=True,
                encoding="utf-8",
                errors="replace",
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as exc:
            raise InvocationError(
                repo,
                f"{self.binary} log timed out after {self.timeout}s",
                _decode(exc.stderr),
            ) from exc
        except OSError as exc:
            raise InvocationError(repo, f"failed to start {self.binary}: {exc}") from exc

        if completed.returncode != 0:
            raise InvocationError(
                repo,
                f"{self.binary} log exited with status {completed.returncode}",
                completed.stderr or "",
            )

        self.logger.debug("Total captured string bytes: %d", len(completed.stdout))
        return completed.stdout


def _decode(raw: str | bytes | None) -> str:
    if raw is None:
        return ""
    if isinstance(raw, bytes):
        return raw.decode("utf-8", errors="replace")
    return raw
