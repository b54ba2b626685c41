"""Thin git CLI wrappers used by diff previews and reloads.

Every helper tolerates a missing ``git`` binary, non-repo directories, and
non-zero exits by returning empty results; callers show a placeholder
instead of failing.
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GitChange:
    """One changed path from ``git status``, relative to the repo root."""

    path: str
    status: str
    staged: bool
    old_path: str = ""

    @property
    def untracked(self) -> bool:
        return self.status == "?"


def run_git(
    repo_root: Path,
    args: list[str],
    timeout_seconds: float | None = None,
) -> subprocess.CompletedProcess[str] | None:
    """Execute a git subcommand, returning ``None`` when it cannot run at all."""
    try:
        return subprocess.run(
            ["git", "-C", str(repo_root), *args],
            stdout=subprocess.PIPE,
            stderr=subprocess.DEVNULL,
            text=True,
            encoding="utf-8",
            errors="replace",
            check=False,
            timeout=timeout_seconds,
        )
    except (OSError, subprocess.SubprocessError) as exc:
        logger.debug("git %s failed in %s: %s", " ".join(args), repo_root, exc)
        return None


def resolve_repo_root(path: Path, timeout_seconds: float | None = 2.0) -> Path | None:
    """Return the repository top-level containing ``path``, or ``None``."""
    proc = run_git(path, ["rev-parse", "--show-toplevel"], timeout_seconds)
    if proc is None or proc.returncode != 0:
        return None
    top = proc.stdout.strip()
    if not top:
        return None
    return Path(top).resolve()


def load_diff(
    repo_root: Path,
    rel_path: str,
    staged: bool,
    context_lines: int,
    timeout_seconds: float | None = None,
) -> str:
    """Return unified diff text for one file, or ``""`` when none is available."""
    args = ["diff", "--no-color", f"-U{max(0, int(context_lines))}"]
    if staged:
        args.append("--cached")
    args.extend(["--", rel_path])
    proc = run_git(repo_root, args, timeout_seconds)
    if proc is None or proc.returncode != 0:
        return ""
    return proc.stdout


def parse_porcelain_status(output: str) -> list[GitChange]:
    """Parse ``git status --porcelain=v1`` output into change records.

    A staged index status wins over the worktree status; untracked entries
    are reported with status ``"?"``.
    """
    changes: list[GitChange] = []
    for line in output.splitlines():
        if len(line) < 4:
            continue
        index_status, work_status = line[0], line[1]
        path = line[3:]
        old_path = ""
        if " -> " in path:
            old_path, path = path.split(" -> ", 1)

        if index_status not in {" ", "?"}:
            changes.append(GitChange(path=path, status=index_status, staged=True, old_path=old_path))
        elif work_status != " " and index_status != "?":
            changes.append(GitChange(path=path, status=work_status, staged=False, old_path=old_path))
        elif index_status == "?":
            changes.append(GitChange(path=path, status="?", staged=False))
    return changes


def load_changes(repo_root: Path, timeout_seconds: float | None = None) -> list[GitChange]:
    proc = run_git(repo_root, ["status", "--porcelain=v1"], timeout_seconds)
    if proc is None or proc.returncode != 0:
        return []
    return parse_porcelain_status(proc.stdout)


__all__ = [
    "GitChange",
    "load_changes",
    "load_diff",
    "parse_porcelain_status",
    "resolve_repo_root",
    "run_git",
]
