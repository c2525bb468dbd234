"""Tests for timing helpers."""

from __future__ import annotations

import pytest
from local_lib.utils import Timer, humanize_seconds


@pytest.mark.parametrize(
    ('seconds', 'expected'),
    [
        (0.25, '250 ms'),
        (1, '1 sec'),
        (45.0, '45 sec'),
        (90, '1.5 min'),
        (9000, '2.5 hr'),
        (3 * 86400, '3 d'),
    ],
)
def test_humanize_seconds(seconds: float, expected: str) -> None:
    assert humanize_seconds(seconds) == expected


def test_timer_counts_up() -> None:
    timer = Timer()
    first = timer.elapsed()
    assert 0 <= first <= timer.elapsed()
    assert timer.elapsed_ms() >= 0
