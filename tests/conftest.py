from __future__ import annotations

import importlib.util
import sys
from pathlib import Path
from typing import Sequence

import numpy as np


def repo_src_path() -> Path:
    """Return the repository's ``src`` directory."""

    return Path(__file__).resolve().parents[1] / "src"


def _ensure_repo_on_path() -> None:
    if importlib.util.find_spec("studybox_tool") is None:
        sys.path.insert(0, str(repo_src_path()))


_ensure_repo_on_path()

SPIKE_AMPLITUDE = 9000
SPIKE_SHAPE = ((-2, 1 / 3), (-1, 2 / 3), (0, 1.0), (1, 2 / 3), (2, 1 / 3))
SHORT_GAP, MID_GAP, LONG_GAP = 9, 13, 18


def spike_waveform(
    events: Sequence[int], length: int, amplitude: int = SPIKE_AMPLITUDE
) -> np.ndarray:
    """Silence with one 5-sample spike per event, alternating peak/valley."""

    out = np.zeros(length, dtype=np.int16)
    direction = 1
    for pos in events:
        for offset, frac in SPIKE_SHAPE:
            out[pos + offset] = int(direction * amplitude * frac)
        direction = -direction
    return out


def byte_bits(value: int) -> list[int]:
    return [(value >> (7 - i)) & 1 for i in range(8)]


def encode_gaps(bits: Sequence[int], prev: int = 0) -> list[int]:
    """Inverse of the decoder's run-length table, starting after ``prev``."""

    gaps: list[int] = []
    i = 0
    while i < len(bits):
        bit = bits[i]
        if prev == 1 and bit == 0:
            nxt = bits[i + 1] if i + 1 < len(bits) else 0
            gaps.append(MID_GAP if nxt == 0 else LONG_GAP)
            prev = nxt
            i += 2
        elif prev == 1:
            gaps.append(SHORT_GAP)
            i += 1
        elif bit == 0:
            gaps.append(SHORT_GAP)
            i += 1
        else:
            gaps.append(MID_GAP)
            prev = 1
            i += 1
    return gaps


def page_bits(payload: bytes, lead_in: int = 20) -> list[int]:
    bits = [0] * lead_in + [1]
    for value in payload:
        bits.append(0)
        bits.extend(byte_bits(value))
    return bits


def page_events(start: int, payload: bytes, lead_in: int = 20) -> list[int]:
    """Clock positions for one page: an anchor clock then the encoded bits."""

    positions = [start]
    pos = start
    for gap in encode_gaps(page_bits(payload, lead_in)):
        pos += gap
        positions.append(pos)
    return positions


def synth_recording(
    payloads: Sequence[bytes],
    first: int = 200,
    page_gap: int = 2000,
    tail: int = 100,
    lead_in: int = 20,
) -> tuple[np.ndarray, list[list[int]]]:
    """Right-channel samples holding one page per payload."""

    pages: list[list[int]] = []
    start = first
    for payload in payloads:
        events = page_events(start, payload, lead_in)
        pages.append(events)
        start = events[-1] + page_gap
    flat = [pos for events in pages for pos in events]
    length = (flat[-1] if flat else first) + tail
    return spike_waveform(flat, length), pages
