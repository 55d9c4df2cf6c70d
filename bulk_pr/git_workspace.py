"""
Git operations on one repository working copy.

Everything shells out to the ``git`` binary through ``run_command``. Parsing
of ``git config --list --null`` and ``git status --porcelain -z`` output is
kept in plain functions so it can be exercised without a repository.
"""

import logging
import re
import subprocess
from typing import Dict, List, Optional, Tuple

from bulk_pr.commands import run_command
from bulk_pr.config import UPSTREAM_REMOTE
from bulk_pr.errors import GitCommandError, WorkspaceError

logger = logging.getLogger(__name__)

# Categories reported by GitWorkspace.status(), in reporting order
STATUS_CATEGORIES = ("created", "deleted", "modified", "renamed", "not_added")

BRANCH_REMOTE_KEY = re.compile(r"^branch\.(.+)\.remote$")


# ============================================================================
# PARSING HELPERS
# ============================================================================

def parse_config_list(raw: str) -> List[Tuple[str, str]]:
    """
    Parse ``git config --list --null`` output into (key, value) pairs.

    Each entry is ``key\\nvalue`` terminated by NUL; a key given without a
    value has no newline and maps to an empty string. Order is preserved.
    """
    pairs = []
    for entry in raw.split("\0"):
        if not entry:
            continue
        key, _, value = entry.partition("\n")
        pairs.append((key, value))
    return pairs


def find_origin_branch(config: List[Tuple[str, str]], remote: str = UPSTREAM_REMOTE) -> str:
    """
    Return the first local branch configured to track ``remote``.

    Raises:
        WorkspaceError: if no ``branch.<name>.remote=<remote>`` entry exists
    """
    for key, value in config:
        match = BRANCH_REMOTE_KEY.match(key)
        if match and value == remote:
            return match.group(1)
    raise WorkspaceError(f"Couldn't find branch.*.remote={remote} in git config")


def parse_status(raw: str) -> Dict[str, list]:
    """
    Parse ``git status --porcelain -z`` output.

    Returns:
        Mapping of each STATUS_CATEGORIES name to its entries. Renamed
        entries are dicts with ``from`` and ``to``; all others are paths.
    """
    status = {category: [] for category in STATUS_CATEGORIES}
    entries = raw.split("\0")
    i = 0
    while i < len(entries):
        entry = entries[i]
        i += 1
        if len(entry) < 4:
            continue
        xy, path = entry[:2], entry[3:]
        index, worktree = xy[0], xy[1]

        if xy == "??":
            status["not_added"].append(path)
        elif index in "RC" or worktree in "RC":
            # -z puts the original path in the following field
            orig = entries[i] if i < len(entries) else ""
            i += 1
            if index == "C" or worktree == "C":
                status["created"].append(path)
            else:
                status["renamed"].append({"from": orig, "to": path})
        elif index == "A":
            status["created"].append(path)
        elif "D" in xy:
            status["deleted"].append(path)
        elif "M" in xy or "T" in xy:
            status["modified"].append(path)
    return status


# ============================================================================
# WORKSPACE
# ============================================================================

class GitWorkspace:
    """A git working copy at ``path``."""

    def __init__(self, path: str):
        self.path = str(path)

    def __repr__(self) -> str:
        return f"GitWorkspace({self.path!r})"

    def _git(self, *args: str, cwd: Optional[str] = None) -> str:
        cmd = ["git", *args]
        try:
            _, stdout, _ = run_command(cmd, cwd=cwd or self.path, check=True)
        except subprocess.CalledProcessError as e:
            raise GitCommandError(cmd, e.returncode, e.stdout or "", e.stderr or "", cwd or self.path) from e
        return stdout

    @classmethod
    def clone(cls, url: str, path: str, cwd: Optional[str] = None) -> "GitWorkspace":
        """Clone ``url`` into ``path`` (which must be empty or absent)."""
        workspace = cls(path)
        workspace._git("clone", url, workspace.path, cwd=cwd)
        return workspace

    def fetch(self, remote: str) -> None:
        self._git("fetch", remote)

    def add_remote(self, name: str, url: str) -> None:
        self._git("remote", "add", name, url)

    def checkout_local_branch(self, branch: str) -> None:
        self._git("checkout", "-b", branch)

    def current_branch(self) -> str:
        return self._git("branch", "--show-current").strip()

    def status(self) -> Dict[str, list]:
        return parse_status(self._git("status", "--porcelain", "-z"))

    def add_all(self) -> None:
        self._git("add", "--all")

    def commit(self, message: str, flags: Optional[List[str]] = None) -> None:
        self._git("commit", "-m", message, *(flags or []))

    def push(self, args: List[str]) -> None:
        self._git("push", *args)

    def config_list(self) -> List[Tuple[str, str]]:
        """All git config visible from this working copy, as ordered (key, value) pairs."""
        return parse_config_list(self._git("config", "--list", "--null"))

    def origin_branch(self) -> str:
        return find_origin_branch(self.config_list())
