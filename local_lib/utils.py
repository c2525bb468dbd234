"""Timing helpers for log lines."""

from __future__ import annotations

import time

__all__ = [
    'Timer',
    'humanize_seconds',
]

_UNITS = (
    ('d', 86400),
    ('hr', 3600),
    ('min', 60),
    ('sec', 1),
)


class Timer:
    """Monotonic stopwatch, started on construction."""

    __slots__ = ('_start',)

    def __init__(self) -> None:
        self._start = time.perf_counter()

    def elapsed(self) -> float:
        return time.perf_counter() - self._start

    def elapsed_ms(self) -> int:
        return int(self.elapsed() * 1000)


def humanize_seconds(seconds: float) -> str:
    """Terse duration for logs: '850 ms', '45 sec', '1.5 min', '2.5 hr', '3 d'."""
    for unit, size in _UNITS:
        if seconds >= size:
            return f'{seconds / size:.1f}'.removesuffix('.0') + f' {unit}'
    return f'{int(seconds * 1000)} ms'
