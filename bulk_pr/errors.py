"""
Exceptions raised by the bulk PR tool.

Skips (existing PR, archived repo, failing command, no changes) are not
errors and never show up here; these are the conditions that stop a run.
"""

from typing import List, Optional


class BulkPrError(Exception):
    """Base class for all bulk PR errors."""


class ConfigurationError(BulkPrError):
    """Invalid combination of options, detected before any repository is touched."""


class AuthenticationError(BulkPrError):
    """No GitHub token could be found for the selected host."""


class WorkspaceError(BulkPrError):
    """The local working copy is in a state the run cannot recover from."""


class GitCommandError(BulkPrError):
    """A git subprocess exited with a non-zero status."""

    def __init__(self, args: List[str], returncode: int, stdout: str = "", stderr: str = "", cwd: Optional[str] = None):
        self.cmd = args
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.cwd = cwd
        detail = (stderr or stdout).strip().splitlines()
        message = f"`{' '.join(args)}` exited with status {returncode}"
        if detail:
            message += f": {detail[-1]}"
        super().__init__(message)
