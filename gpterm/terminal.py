"""
Terminal input handling.

A message may span several lines and is submitted by ending a line with the
submit marker (";;" by default). `exit` and `reset` are commands when typed
as the first line of a submission.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

EXIT_COMMAND = "exit"
RESET_COMMAND = "reset"


class SubmissionKind(Enum):
    MESSAGE = "message"
    RESET = "reset"
    EXIT = "exit"


@dataclass(frozen=True)
class Submission:
    kind: SubmissionKind
    text: str = ""


def collect_submission(
    read_line: Callable[[str], str],
    prompt: str = "> ",
    submit_marker: str = ";;",
) -> Submission:
    """Read lines until a complete message or a command has been entered."""
    lines: list[str] = []
    while True:
        try:
            line = read_line(prompt)
        except EOFError:
            return Submission(SubmissionKind.EXIT)

        line = line.rstrip("\r\n")
        if not lines:
            command = line.strip()
            if command == EXIT_COMMAND:
                return Submission(SubmissionKind.EXIT)
            if command == RESET_COMMAND:
                return Submission(SubmissionKind.RESET)

        if line.rstrip().endswith(submit_marker):
            lines.append(line.rstrip()[: -len(submit_marker)])
            return Submission(SubmissionKind.MESSAGE, "\n".join(lines))

        lines.append(line)
