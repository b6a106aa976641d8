"""
``.studybox`` container serialization and decode diagnostics.

Layout (little endian throughout)::

    STBX  u32 len=4           u32 version=0x0100
    PAGE  u32 len=payload+8   u32 lead_in  u32 data_start  payload   (per page)
    AUDI  u32 len=wav+4       u32 audio_type=0  mono WAV bytes
"""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence

from .decoder import DecodeResult
from .pages import Page
from .wav import WavImage

logger = logging.getLogger(__name__)

STBX_MAGIC = b"STBX"
PAGE_MAGIC = b"PAGE"
AUDI_MAGIC = b"AUDI"
CONTAINER_VERSION = 0x0100
AUDIO_TYPE_WAV = 0

_CHUNK_HEADER = struct.Struct("<4sI")


@dataclass(frozen=True)
class StudyBoxPage:
    lead_in_position: int
    data_start_position: int
    payload: bytes


@dataclass(frozen=True)
class StudyBox:
    version: int
    pages: tuple[StudyBoxPage, ...]
    audio_type: int
    audio: bytes


@dataclass
class OutputPaths:
    out_dir: Path
    container: Optional[Path] = None
    error_log: Optional[Path] = None
    page_summary: Optional[Path] = None
    page_dumps: List[Path] = field(default_factory=list)


def build_studybox(pages: Sequence[Page], audio: bytes) -> bytes:
    out = bytearray()
    out += _CHUNK_HEADER.pack(STBX_MAGIC, 4)
    out += struct.pack("<I", CONTAINER_VERSION)
    for page in pages:
        out += _CHUNK_HEADER.pack(PAGE_MAGIC, len(page.payload) + 8)
        out += struct.pack("<II", page.lead_in_position, page.data_start_position)
        out += page.payload
    out += _CHUNK_HEADER.pack(AUDI_MAGIC, len(audio) + 4)
    out += struct.pack("<I", AUDIO_TYPE_WAV)
    out += audio
    return bytes(out)


def read_studybox(data: bytes) -> StudyBox:
    if len(data) < 12 or data[:4] != STBX_MAGIC:
        raise ValueError("Not a studybox container (missing STBX header)")
    _, length = _CHUNK_HEADER.unpack_from(data, 0)
    if length != 4:
        raise ValueError(f"Unexpected STBX chunk length {length}")
    (version,) = struct.unpack_from("<I", data, 8)

    pages: list[StudyBoxPage] = []
    audio_type: int | None = None
    audio = b""
    offset = 12
    while offset < len(data):
        if offset + 8 > len(data):
            raise ValueError(f"Truncated chunk header at offset {offset}")
        magic, length = _CHUNK_HEADER.unpack_from(data, offset)
        body = data[offset + 8 : offset + 8 + length]
        if len(body) != length:
            raise ValueError(f"Chunk {magic!r} at offset {offset} is truncated")
        if magic == PAGE_MAGIC:
            if length < 8:
                raise ValueError(f"PAGE chunk at offset {offset} is too short")
            lead_in, data_start = struct.unpack_from("<II", body, 0)
            pages.append(
                StudyBoxPage(
                    lead_in_position=lead_in,
                    data_start_position=data_start,
                    payload=bytes(body[8:]),
                )
            )
        elif magic == AUDI_MAGIC:
            if length < 4:
                raise ValueError(f"AUDI chunk at offset {offset} is too short")
            (audio_type,) = struct.unpack_from("<I", body, 0)
            audio = bytes(body[4:])
        else:
            raise ValueError(f"Unknown chunk {magic!r} at offset {offset}")
        offset += 8 + length

    if audio_type is None:
        raise ValueError("Container has no AUDI chunk")
    return StudyBox(
        version=version, pages=tuple(pages), audio_type=audio_type, audio=audio
    )


def _flag(ok: bool) -> str:
    return "OK" if ok else "BAD"


def render_page_summary(result: DecodeResult) -> str:
    lines = [f"== Pages for {result.name} ({len(result.pages)} decoded) =="]
    for page in result.pages:
        page_id = f"{page.page_id:3d}" if page.page_id is not None else " --"
        faults = ", ".join(f.value for f in page.faults) or "none"
        lines.append(
            f"Page {page.index:3d}: id={page_id} "
            f"lead-in={page.lead_in_position} ({page.lead_in_length} bits) "
            f"data-start={page.data_start_position} length={len(page.payload)} "
            f"header={_flag(page.header_valid)} data={_flag(page.data_valid)} "
            f"filter={page.cutoff_hz} Hz faults={faults}"
        )
    if not result.pages:
        lines.append("  (no pages decoded)")
    return "\n".join(lines) + "\n"


def render_error_log(result: DecodeResult) -> str:
    failed = result.failed_pages
    lines = [
        f"== Decode log for {result.name} ==",
        f"Samples: {result.sample_count}  Pages: {len(result.pages)}  "
        f"Failed: {len(failed)}  Spurious clocks: {result.spurious_clocks}",
    ]
    if result.cutoffs_used:
        lines.append(
            "Filters used: " + ", ".join(f"{hz} Hz" for hz in result.cutoffs_used)
        )
    lines.append("")
    lines.extend(result.log or ["(log is empty)"])
    return "\n".join(lines) + "\n"


def write_page_dumps(pages: Sequence[Page], out_dir: Path) -> list[Path]:
    written = []
    for page in pages:
        name = f"Page{page.index:03d}{page.status_suffix}"
        if page.page_id is not None:
            name += f" (Number={page.page_id})"
        path = out_dir / f"{name}.bin"
        path.write_bytes(page.payload)
        written.append(path)
    return written


def write_outputs(
    result: DecodeResult, out_dir: Path, wav: WavImage | None = None
) -> OutputPaths:
    """
    Write the decode products for one file into ``out_dir``.

    A container is only produced when every page is valid; otherwise the
    error log and page summary are written instead.
    """

    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    paths = OutputPaths(out_dir=out_dir)
    paths.page_dumps = write_page_dumps(result.pages, out_dir)

    if not result.all_valid:
        paths.error_log = out_dir / f"{result.name}.errors.txt"
        paths.page_summary = out_dir / f"{result.name}.pages.txt"
        paths.error_log.write_text(render_error_log(result))
        paths.page_summary.write_text(render_page_summary(result))
        logger.warning(
            "%s: %d invalid page(s), wrote diagnostics instead of a container",
            result.name,
            len(result.failed_pages),
        )
        return paths

    source = wav if wav is not None else result.source
    if source is None:
        raise ValueError(f"{result.name}: no source audio to embed in the container")
    paths.container = out_dir / f"{result.name}.studybox"
    paths.container.write_bytes(build_studybox(result.pages, source.mono_bytes()))
    logger.info(
        "%s: wrote %s with %d page(s)", result.name, paths.container, len(result.pages)
    )
    return paths
