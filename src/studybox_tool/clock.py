"""
Flux transition (clock) detection over 16-bit sample buffers.

A clock is a sharp local extremum: the sample must differ from both of its
neighbours three samples away by at least the amplitude threshold, in the
same direction, and the two samples on either side must climb towards it
(peak) or fall towards it (valley).
"""

from __future__ import annotations

from enum import IntEnum
from typing import Iterator, Sequence

import numpy as np

AMPLITUDE_THRESHOLD = 500
REACH = 3


class ClockType(IntEnum):
    NONE = 0
    RISING = 1
    FALLING = -1


def _sign(value: int) -> int:
    return (value > 0) - (value < 0)


def detect_clock(
    samples: Sequence[int], i: int, threshold: int = AMPLITUDE_THRESHOLD
) -> ClockType:
    n = len(samples)
    if i < REACH or i >= n - REACH:
        return ClockType.NONE

    s = int(samples[i])
    m1, m2, m3 = int(samples[i - 1]), int(samples[i - 2]), int(samples[i - 3])
    p1, p2, p3 = int(samples[i + 1]), int(samples[i + 2]), int(samples[i + 3])

    if abs(s - m3) < threshold or abs(s - p3) < threshold:
        return ClockType.NONE
    if _sign(s - m3) != _sign(s - p3):
        return ClockType.NONE

    if s >= m1 and s >= p1 and m1 > m2 and p1 > p2:
        return ClockType.RISING
    if s <= m1 and s <= p1 and m1 < m2 and p1 < p2:
        return ClockType.FALLING
    return ClockType.NONE


def clock_map(samples: np.ndarray, threshold: int = AMPLITUDE_THRESHOLD) -> np.ndarray:
    """
    Classify every index of ``samples`` at once.

    Returns an int8 array of ClockType values that matches ``detect_clock``
    index for index; the first and last three entries are always NONE.
    """

    s = np.asarray(samples, dtype=np.int32)
    n = len(s)
    out = np.zeros(n, dtype=np.int8)
    if n <= 2 * REACH:
        return out

    c = s[REACH : n - REACH]
    m1, m2, m3 = s[2 : n - 4], s[1 : n - 5], s[0 : n - 6]
    p1, p2, p3 = s[4 : n - 2], s[5 : n - 1], s[6:n]

    d_prev = c - m3
    d_next = c - p3
    strong = (
        (np.abs(d_prev) >= threshold)
        & (np.abs(d_next) >= threshold)
        & (np.sign(d_prev) == np.sign(d_next))
    )
    peak = (c >= m1) & (c >= p1) & (m1 > m2) & (p1 > p2)
    valley = (c <= m1) & (c <= p1) & (m1 < m2) & (p1 < p2)

    out[REACH : n - REACH] = np.where(
        strong & peak,
        int(ClockType.RISING),
        np.where(strong & valley, int(ClockType.FALLING), int(ClockType.NONE)),
    )
    return out


def clock_events(
    samples: np.ndarray, threshold: int = AMPLITUDE_THRESHOLD
) -> Iterator[tuple[int, ClockType]]:
    """Yield ``(index, type)`` for every detected transition, in order."""

    kinds = clock_map(samples, threshold)
    for idx in np.flatnonzero(kinds):
        yield int(idx), ClockType(int(kinds[idx]))
