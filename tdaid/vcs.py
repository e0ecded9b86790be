"""Git operations used by the loop. Everything shells out to the `git` binary."""

import subprocess
import sys
from pathlib import Path

from tdaid.errors import VersionControlError

INITIAL_COMMIT_MESSAGE = "Initial commit"


def _run_git(root: Path, args: list[str]) -> tuple[int, str, str]:
    """Run a git command in root and return (returncode, stdout, stderr)."""
    try:
        proc = subprocess.run(
            ["git", *args],
            cwd=str(root),
            text=True,
            encoding="utf-8",
            errors="replace",
            capture_output=True,
            check=False,
        )
        return proc.returncode, proc.stdout, proc.stderr
    except FileNotFoundError:
        return 127, "", "git not found"


def _git(root: Path, args: list[str]) -> str:
    """Run a git command and return stdout, raising on a non-zero exit."""
    rc, out, err = _run_git(root, args)
    if rc != 0:
        raise VersionControlError(args, rc, err)
    return out


def ensure_repository(root: Path) -> None:
    """Initialize root as a git repository. A no-op if it already is one."""
    _git(root, ["init"])


def _has_head(root: Path) -> bool:
    rc, _, _ = _run_git(root, ["rev-parse", "--verify", "--quiet", "HEAD"])
    return rc == 0


def current_revision(root: Path) -> str:
    """Return the hash of HEAD.

    A repository with no commits yet gets an initial commit of whatever is in the
    working tree, so there is always a revision to diff and squash against.
    """
    if not _has_head(root):
        print("No commits yet; creating an initial commit.", file=sys.stderr)
        commit_all(root, INITIAL_COMMIT_MESSAGE)
    return _git(root, ["rev-parse", "HEAD"]).strip()


def log_since(root: Path, revision: str) -> str:
    """Return `git log -p` for every commit after revision. Empty if there are none."""
    return _git(root, ["log", "-p", f"{revision}..HEAD"])


def commit_all(root: Path, message: str) -> None:
    """Stage everything and commit, even if nothing changed."""
    _git(root, ["add", "."])
    _git(root, ["commit", "--allow-empty", "--allow-empty-message", "-m", message])


def squash(root: Path, revision: str, message: str) -> None:
    """Collapse every commit after revision into a single commit carrying message."""
    _git(root, ["reset", "--soft", revision])
    _git(root, ["commit", "--allow-empty", "-m", message])


def count_commits_since(root: Path, revision: str) -> int:
    return int(_git(root, ["rev-list", "--count", f"{revision}..HEAD"]).strip())
