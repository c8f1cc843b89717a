"""Shell-command log entries recorded during a deployment attempt."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping

# Exit code used when the collector sends something that is not an integer.
UNKNOWN_EXIT_CODE = -1


def _text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _exit_code(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, bool):
        return int(value)
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return UNKNOWN_EXIT_CODE


@dataclass(frozen=True)
class LogEntry:
    """
    One executed shell operation.

    Attributes:
        timestamp: ISO-8601 execution time
        command: Command line that was run
        output: Captured stdout
        error: Captured stderr
        exit_code: Process exit status (0 means success)
    """
    timestamp: str = ""
    command: str = ""
    output: str = ""
    error: str = ""
    exit_code: int = 0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LogEntry":
        return cls(
            timestamp=_text(data.get("timestamp")),
            command=_text(data.get("command")),
            output=_text(data.get("output")),
            error=_text(data.get("error")),
            exit_code=_exit_code(data.get("exit_code")),
        )

    @property
    def failed(self) -> bool:
        return self.exit_code != 0

    @property
    def full_output(self) -> str:
        """stdout followed by stderr, as the patterns see it."""
        return self.output + self.error

    @property
    def message(self) -> str:
        """stderr when present, otherwise stdout."""
        return self.error or self.output


def coerce_logs(logs: Iterable[Any] | None) -> list[LogEntry]:
    """Accept entries or raw dicts (or None) and return a list of entries."""
    if not logs:
        return []
    entries: list[LogEntry] = []
    for log in logs:
        if isinstance(log, LogEntry):
            entries.append(log)
        elif isinstance(log, Mapping):
            entries.append(LogEntry.from_dict(log))
    return entries


def first_line(text: str) -> str:
    return text.split("\n", 1)[0]
