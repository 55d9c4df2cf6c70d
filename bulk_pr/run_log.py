"""
Run log: the per-repository audit trail shown to the operator.

Every entry is a human message plus structured fields carrying an ``op`` tag.
In JSON mode each entry becomes one line ``{"t": <epoch ms>, "data": {...}}``.
Transient entries are progress lines that the next entry may overwrite when
writing to a terminal.
"""

import json
import sys
import time
from typing import Any, Dict, List, Optional, TextIO

CLEAR_LINE = "\r\x1b[K"


class RunLog:
    """Base run log; subclasses decide where formatted lines go."""

    def __init__(self, json_mode: bool = False, prefix: str = ""):
        self.json_mode = json_mode
        self.prefix = prefix

    def record(self, message: str, data: Dict[str, Any]) -> None:
        self._emit(self._format(message, data), transient=False)

    def record_transient(self, message: str, data: Dict[str, Any]) -> None:
        self._emit(self._format(message, data), transient=True)

    def for_target(self, owner_repo: str) -> "RunLog":
        """Return a log writing to the same place, prefixed with the repository."""
        raise NotImplementedError

    def _format(self, message: str, data: Dict[str, Any]) -> str:
        if self.json_mode:
            return json.dumps({"t": int(time.time() * 1000), "data": data}, default=str)
        return f"{self.prefix}{message}"

    def _emit(self, line: str, transient: bool) -> None:
        raise NotImplementedError


class BufferedRunLog(RunLog):
    """Collects lines in a list instead of writing them anywhere."""

    def __init__(self, buffer: List[str], json_mode: bool = False, prefix: str = ""):
        super().__init__(json_mode, prefix)
        self.buffer = buffer

    def for_target(self, owner_repo: str) -> "BufferedRunLog":
        return BufferedRunLog(self.buffer, self.json_mode, f"{owner_repo}: ")

    def _emit(self, line: str, transient: bool) -> None:
        self.buffer.append(line)


class TerminalRunLog(RunLog):
    """
    Writes to a stream (stdout by default).

    On a TTY a transient line is left without a newline and erased by
    whatever is written next. JSON output never overwrites.
    """

    def __init__(self, stream: Optional[TextIO] = None, json_mode: bool = False, prefix: str = "", _state: Optional[Dict[str, bool]] = None):
        super().__init__(json_mode, prefix)
        self.stream = stream if stream is not None else sys.stdout
        # shared between a log and the per-target logs derived from it
        self._state = _state if _state is not None else {"pending": False}

    def for_target(self, owner_repo: str) -> "TerminalRunLog":
        return TerminalRunLog(self.stream, self.json_mode, f"{owner_repo}: ", self._state)

    def _overwrites(self) -> bool:
        if self.json_mode:
            return False
        isatty = getattr(self.stream, "isatty", None)
        return bool(isatty and isatty())

    def _emit(self, line: str, transient: bool) -> None:
        if not self._overwrites():
            self.stream.write(line + "\n")
            self.stream.flush()
            return

        if self._state["pending"]:
            self.stream.write(CLEAR_LINE)
        if transient:
            self.stream.write(line)
        else:
            self.stream.write(line + "\n")
        self._state["pending"] = transient
        self.stream.flush()


def make_run_log(json_mode: bool = False, buffer: Optional[List[str]] = None) -> RunLog:
    """Pick the run log implementation: buffered when a buffer is given, else the terminal."""
    if buffer is not None:
        return BufferedRunLog(buffer, json_mode)
    return TerminalRunLog(json_mode=json_mode)
