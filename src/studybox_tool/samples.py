"""
Sample buffers and the high-pass recovery filter.

A decode session keeps the original right-channel samples plus any number
of filtered variants, one per cutoff frequency. Variants are always derived
from the original so a retry at 500 Hz never sees the 250 Hz output.
"""

from __future__ import annotations

import logging
import math
from functools import cached_property
from typing import Dict, Sequence

import numpy as np
from scipy import signal as sp_signal

from .clock import AMPLITUDE_THRESHOLD, clock_map

logger = logging.getLogger(__name__)

SAMPLE_RATE_HZ = 44_100
INT16_MIN = -32768
INT16_MAX = 32767


class SampleBuffer:
    """Read-only int16 samples with a lazily computed clock map."""

    def __init__(
        self,
        samples: Sequence[int] | np.ndarray,
        cutoff_hz: int = 0,
        threshold: int = AMPLITUDE_THRESHOLD,
    ):
        data = np.array(samples, dtype=np.int16, copy=True)
        data.flags.writeable = False
        self.samples = data
        self.cutoff_hz = cutoff_hz
        self.threshold = threshold

    def __len__(self) -> int:
        return len(self.samples)

    @cached_property
    def clocks(self) -> np.ndarray:
        kinds = clock_map(self.samples, self.threshold)
        kinds.flags.writeable = False
        return kinds

    @cached_property
    def event_positions(self) -> np.ndarray:
        """Sorted indices of every non-NONE clock."""

        return np.flatnonzero(self.clocks)


def high_pass(
    samples: Sequence[int] | np.ndarray,
    cutoff_hz: float,
    sample_rate: int = SAMPLE_RATE_HZ,
) -> np.ndarray:
    """
    Single-pole high-pass filter used to strip low-frequency drift.

    ``y[0] = x[0]`` and ``y[i] = a * (y[i-1] + x[i] - x[i+1])`` for
    ``1 <= i < N-1``; the final sample is left at zero. The recurrence runs
    in float64 and only the output is truncated toward zero and saturated
    to int16.
    """

    x = np.asarray(samples, dtype=np.int16)
    if cutoff_hz <= 0:
        return x.copy()

    n = len(x)
    out = np.zeros(n, dtype=np.int16)
    if n == 0:
        return out
    out[0] = x[0]
    if n < 3:
        return out

    rc = 1.0 / (2 * math.pi * cutoff_hz)
    a = rc / (rc + (1.0 / sample_rate))

    src = x.astype(np.float64)
    drive = src[1:-1] - src[2:]
    y, _ = sp_signal.lfilter([a], [1.0, -a], drive, zi=[a * src[0]])
    out[1:-1] = np.clip(np.trunc(y), INT16_MIN, INT16_MAX)
    return out


class SampleStore:
    """Original samples plus cached filtered variants for one file."""

    def __init__(
        self,
        original: Sequence[int] | np.ndarray,
        sample_rate: int = SAMPLE_RATE_HZ,
        threshold: int = AMPLITUDE_THRESHOLD,
    ):
        self.sample_rate = sample_rate
        self.threshold = threshold
        self.original = SampleBuffer(original, threshold=threshold)
        self._filtered: Dict[int, SampleBuffer] = {}

    @property
    def cutoffs(self) -> tuple[int, ...]:
        return tuple(sorted(self._filtered))

    def buffer(self, cutoff_hz: int) -> SampleBuffer:
        if cutoff_hz <= 0:
            return self.original
        cached = self._filtered.get(cutoff_hz)
        if cached is not None:
            return cached
        logger.debug(
            "Computing %d Hz high-pass over %d samples", cutoff_hz, len(self.original)
        )
        filtered = SampleBuffer(
            high_pass(self.original.samples, cutoff_hz, self.sample_rate),
            cutoff_hz=cutoff_hz,
            threshold=self.threshold,
        )
        self._filtered[cutoff_hz] = filtered
        return filtered
