"""
Canonical 16-bit stereo WAV reader and mono re-headering.

Study Box recordings are captured as plain 44-byte-header PCM files. The
data track lives on the right channel; the left channel carries the
narration audio that ends up in the container.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from pathlib import Path

import numpy as np

HEADER_SIZE = 44
FRAME_SIZE = 4  # two interleaved 16-bit channels
MONO_BYTE_RATE = 88_200
MONO_BLOCK_ALIGN = 2
WAVE_FORMAT_PCM = 1

_HEADER_STRUCT = struct.Struct("<4sI4s4sIHHIIHH4sI")


class WavFormatError(ValueError):
    """Raised when a source file is not a canonical 16-bit stereo WAV."""


@dataclass(frozen=True)
class WavHeader:
    riff_size: int
    format_tag: int
    channels: int
    sample_rate: int
    byte_rate: int
    block_align: int
    bits_per_sample: int
    data_size: int


class WavImage:
    def __init__(self, header: WavHeader, raw: bytes, name: str = "<memory>"):
        self.header = header
        self.name = name
        self._raw = raw

    @classmethod
    def from_file(cls, path: Path | str) -> "WavImage":
        path = Path(path)
        return cls.from_bytes(path.read_bytes(), name=path.stem)

    @classmethod
    def from_bytes(cls, data: bytes, name: str = "<memory>") -> "WavImage":
        if len(data) < HEADER_SIZE:
            raise WavFormatError(
                f"{name}: {len(data)} bytes is shorter than a {HEADER_SIZE}-byte header"
            )
        (
            riff,
            riff_size,
            wave,
            fmt_tag,
            _fmt_size,
            format_tag,
            channels,
            sample_rate,
            byte_rate,
            block_align,
            bits_per_sample,
            data_tag,
            data_size,
        ) = _HEADER_STRUCT.unpack_from(data, 0)
        if riff != b"RIFF" or wave != b"WAVE":
            raise WavFormatError(f"{name}: not a WAV file (missing RIFF/WAVE tags)")
        if fmt_tag != b"fmt " or data_tag != b"data":
            raise WavFormatError(f"{name}: expected a canonical 44-byte header")
        if format_tag != WAVE_FORMAT_PCM:
            raise WavFormatError(f"{name}: format tag {format_tag} is not integer PCM")
        if bits_per_sample != 16 or channels != 2:
            raise WavFormatError(
                f"{name}: expected 16-bit stereo PCM, got "
                f"{bits_per_sample}-bit with {channels} channel(s)"
            )

        hdr = WavHeader(
            riff_size=riff_size,
            format_tag=format_tag,
            channels=channels,
            sample_rate=sample_rate,
            byte_rate=byte_rate,
            block_align=block_align,
            bits_per_sample=bits_per_sample,
            data_size=data_size,
        )
        return cls(header=hdr, raw=bytes(data), name=name)

    @property
    def raw(self) -> bytes:
        return self._raw

    @property
    def frame_count(self) -> int:
        return (len(self._raw) - HEADER_SIZE) // FRAME_SIZE

    def _frames(self) -> np.ndarray:
        pcm = np.frombuffer(
            self._raw, dtype="<i2", offset=HEADER_SIZE, count=self.frame_count * 2
        )
        return pcm.reshape(-1, 2)

    def right_channel(self) -> np.ndarray:
        """Return the data-track samples (second channel) as int16."""

        return self._frames()[:, 1].astype(np.int16)

    def mono_bytes(self) -> bytes:
        """
        Return a mono WAV holding the first channel of every frame.

        The original header is kept and patched: channel count 1, byte rate
        88200, block align 2, data size halved and the RIFF size recomputed
        from the rewritten length.
        """

        header = bytearray(self._raw[:HEADER_SIZE])
        samples = self._frames()[:, 0].astype("<i2").tobytes()
        struct.pack_into("<H", header, 0x16, 1)
        struct.pack_into("<I", header, 0x1C, MONO_BYTE_RATE)
        struct.pack_into("<H", header, 0x20, MONO_BLOCK_ALIGN)
        struct.pack_into("<I", header, 0x28, self.header.data_size // 2)
        struct.pack_into("<I", header, 0x04, HEADER_SIZE + len(samples) - 8)
        return bytes(header) + samples


def build_wav(
    right: np.ndarray, left: np.ndarray | None = None, sample_rate: int = 44_100
) -> bytes:
    """
    Build a canonical 16-bit stereo WAV from per-channel sample arrays.

    The left channel defaults to silence.
    """

    right = np.asarray(right, dtype="<i2")
    left = np.zeros_like(right) if left is None else np.asarray(left, dtype="<i2")
    if left.shape != right.shape:
        raise ValueError("left and right channels must have the same length")
    frames = np.empty((len(right), 2), dtype="<i2")
    frames[:, 0] = left
    frames[:, 1] = right
    payload = frames.tobytes()
    header = _HEADER_STRUCT.pack(
        b"RIFF",
        HEADER_SIZE + len(payload) - 8,
        b"WAVE",
        b"fmt ",
        16,
        WAVE_FORMAT_PCM,
        2,
        sample_rate,
        sample_rate * FRAME_SIZE,
        FRAME_SIZE,
        16,
        b"data",
        len(payload),
    )
    return header + payload
