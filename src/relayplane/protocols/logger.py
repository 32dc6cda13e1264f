"""RunLogger protocol for human-facing run progress.

Diagnostic logging goes through the standard logging module; this
protocol carries the short progress lines a developer sees while a
workflow runs, and can be swapped for testing or batch execution.
"""

from typing import Protocol, runtime_checkable


@runtime_checkable
class RunLogger(Protocol):
    """Protocol for run progress output."""

    def print(self, message: str) -> None:
        """Print a message (may contain Rich markup)."""
        ...


class RichConsoleLogger:
    """Progress output on a Rich console (stderr)."""

    def __init__(self) -> None:
        from rich.console import Console

        self._console = Console(stderr=True)

    def print(self, message: str) -> None:
        self._console.print(message)


class NullLogger:
    """Silent logger, the default for library use."""

    def print(self, message: str) -> None:
        pass


class ListLogger:
    """Logger that captures messages to a list for testing."""

    def __init__(self) -> None:
        self.messages: list[str] = []

    def print(self, message: str) -> None:
        self.messages.append(message)
