"""Percent-based progress reporting shared by the engine and the worker."""

from __future__ import annotations

from typing import Callable, Optional


class ProgressReporter:
    """
    Forwards progress percentages to ``sink`` while keeping them monotonic.

    Values are clamped to ``[0, 100]`` and never fall below the last value
    sent; repeated values are dropped except for the very first report.
    """

    def __init__(self, sink: Callable[[int], None]):
        self._sink = sink
        self._last: Optional[int] = None

    @property
    def last(self) -> Optional[int]:
        return self._last

    def report(self, percent: float) -> None:
        value = int(min(100, max(0, round(percent))))
        if self._last is not None and value <= self._last:
            return
        self._last = value
        self._sink(value)

    def report_range(self, start: float, end: float, processed: int, total: int) -> None:
        """Map ``processed/total`` of a chunked sub-step onto the ``start..end`` band."""
        if total <= 0:
            self.report(end)
            return
        fraction = min(1.0, processed / total)
        self.report(start + (end - start) * fraction)

    def complete(self) -> None:
        self.report(100)


class NullReporter(ProgressReporter):
    """Reporter that discards everything; used when no progress was requested."""

    def __init__(self):
        super().__init__(lambda _value: None)
