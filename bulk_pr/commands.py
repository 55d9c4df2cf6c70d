"""
Subprocess helpers.

``run_command`` runs an argv list (git, gh) and raises on failure when asked.
``run_shell`` runs a user-supplied shell command line and never raises for a
failing command: the caller inspects ``ShellResult.ok``.
"""

import logging
import subprocess
from typing import List, Optional, Tuple

logger = logging.getLogger(__name__)


class ShellResult:
    """Outcome of a shell command line."""

    def __init__(self, cmd_line: str, returncode: int, stdout: str, stderr: str, message: str = ""):
        self.cmd_line = cmd_line
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        # first line of the failure description, empty on success
        self.message = message

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def __repr__(self) -> str:
        return f"ShellResult(cmd_line={self.cmd_line!r}, returncode={self.returncode})"


def run_command(
    cmd: List[str],
    cwd: Optional[str] = None,
    check: bool = True,
    capture_output: bool = True,
) -> Tuple[int, str, str]:
    """
    Execute a command and return the result.

    Args:
        cmd: Command to run as a list of strings
        cwd: Working directory for the command
        check: If True, raise CalledProcessError on non-zero exit code
        capture_output: If True, capture stdout and stderr

    Returns:
        Tuple of (exit_code, stdout, stderr)
    """
    logger.debug(f"Executing: {' '.join(cmd)}" + (f" (in {cwd})" if cwd else ""))
    result = subprocess.run(
        cmd,
        cwd=cwd,
        check=False,
        capture_output=capture_output,
        text=True,
    )
    stdout = result.stdout if capture_output else ""
    stderr = result.stderr if capture_output else ""

    if check and result.returncode != 0:
        raise subprocess.CalledProcessError(result.returncode, cmd, stdout, stderr)

    return result.returncode, stdout, stderr


def run_shell(cmd_line: str, cwd: str) -> ShellResult:
    """
    Run a command line through the shell in ``cwd``.

    A non-zero exit, or a shell that cannot be started, is reported through
    the returned ShellResult rather than raised.
    """
    logger.debug(f"Running shell command in {cwd}: {cmd_line}")
    try:
        result = subprocess.run(
            cmd_line,
            cwd=cwd,
            shell=True,
            check=False,
            capture_output=True,
            text=True,
        )
    except OSError as e:
        return ShellResult(cmd_line, 127, "", "", f"Command failed: {cmd_line}: {e}")

    if result.returncode == 0:
        return ShellResult(cmd_line, 0, result.stdout, result.stderr)

    message = f"Command failed: {cmd_line}"
    if result.returncode < 0:
        message += f" (killed by signal {-result.returncode})"
    else:
        message += f" (exit status {result.returncode})"
    return ShellResult(cmd_line, result.returncode, result.stdout, result.stderr, message)
