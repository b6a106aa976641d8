import math

import numpy as np
import pytest

from studybox_tool.samples import SampleBuffer, SampleStore, high_pass


def test_zero_cutoff_is_identity() -> None:
    x = np.array([5, -7, 300, 0], dtype=np.int16)
    assert high_pass(x, 0).tolist() == x.tolist()


def _reference_high_pass(x: list[int], cutoff_hz: float) -> list[int]:
    rc = 1.0 / (2 * math.pi * cutoff_hz)
    a = rc / (rc + 1.0 / 44_100)
    out = [x[0]]
    prev = float(x[0])
    for i in range(1, len(x) - 1):
        prev = a * (prev + x[i] - x[i + 1])
        out.append(max(-32768, min(32767, math.trunc(prev))))
    out.append(0)
    return out


def test_high_pass_follows_recurrence() -> None:
    x = [100, 200, 50, -30, 0]
    got = high_pass(x, 250).tolist()
    expected = _reference_high_pass(x, 250)
    assert got[0] == 100 and got[-1] == 0
    assert all(abs(g - e) <= 1 for g, e in zip(got, expected))


def test_high_pass_matches_recurrence_on_noise() -> None:
    rng = np.random.default_rng(5)
    x = rng.integers(-12000, 12000, size=2000).astype(np.int16)
    expected = _reference_high_pass(x.tolist(), 500)
    got = high_pass(x, 500).tolist()
    # float rounding may move a truncation by one count
    assert max(abs(g - e) for g, e in zip(got, expected)) <= 1
    assert got[0] == int(x[0]) and got[-1] == 0


def test_high_pass_short_buffers() -> None:
    assert high_pass([], 250).tolist() == []
    assert high_pass([7], 250).tolist() == [7]
    assert high_pass([7, 9], 250).tolist() == [7, 0]


def test_high_pass_saturates_to_int16() -> None:
    x = np.array([32767, 32767, -32768, 0], dtype=np.int16)
    out = high_pass(x, 10)
    assert out.dtype == np.int16
    assert out[1] == 32767


def test_sample_buffer_is_read_only() -> None:
    buf = SampleBuffer([1, 2, 3])
    with pytest.raises(ValueError):
        buf.samples[0] = 9
    with pytest.raises(ValueError):
        buf.clocks[0] = 1


def test_store_caches_variants_derived_from_original() -> None:
    rng = np.random.default_rng(3)
    original = rng.integers(-3000, 3000, size=400).astype(np.int16)
    store = SampleStore(original)

    assert store.buffer(0) is store.original
    first = store.buffer(250)
    assert store.buffer(250) is first
    second = store.buffer(500)
    assert store.cutoffs == (250, 500)
    assert second.cutoff_hz == 500
    assert second.samples.tolist() == high_pass(original, 500).tolist()
    assert store.original.samples.tolist() == original.tolist()
