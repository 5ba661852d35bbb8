"""
Progress reporting port used by the format parsers.
"""

from typing import Protocol


class ProgressReporter(Protocol):
    """
    Receives progress after every flushed batch.

    Parsers await report() in source order; implementations decide how
    (and whether) to persist the numbers.
    """

    async def report(self, processed: int, total: int | None = None) -> None:
        ...


class NullProgressReporter:
    """Progress reporter that records the latest values in memory only."""

    def __init__(self):
        self.processed = 0
        self.total = 0
        self.reports: list[tuple[int, int]] = []

    async def report(self, processed: int, total: int | None = None) -> None:
        self.processed = max(self.processed, processed)
        if total is not None:
            self.total = max(self.total, total)
        self.reports.append((self.processed, self.total))
