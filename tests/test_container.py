from __future__ import annotations

import struct
from pathlib import Path

import pytest

from conftest import synth_recording
from studybox_tool.container import (
    build_studybox,
    read_studybox,
    render_page_summary,
    write_outputs,
    write_page_dumps,
)
from studybox_tool.decoder import decode_wav
from studybox_tool.pages import Page
from studybox_tool.wav import HEADER_SIZE, WavImage, build_wav


def _page(index: int, payload: bytes, valid: bool = True) -> Page:
    return Page(
        index=index,
        payload=payload,
        lead_in_position=100 + index,
        lead_in_length=20,
        data_start_position=300 + index,
        header_valid=payload[:1] == b"\xc5",
        data_valid=valid,
    )


def test_container_layout() -> None:
    payload = b"\xc5\x01\x02\x03\x04\x05"
    audio = b"RIFFxxxx"
    blob = build_studybox([_page(0, payload)], audio)

    assert blob[:4] == b"STBX"
    assert struct.unpack_from("<II", blob, 4) == (4, 0x0100)
    assert blob[12:16] == b"PAGE"
    assert struct.unpack_from("<III", blob, 16) == (14, 100, 300)
    assert blob[28:34] == payload
    assert blob[34:38] == b"AUDI"
    assert struct.unpack_from("<II", blob, 38) == (len(audio) + 4, 0)
    assert blob[46:] == audio


def test_read_studybox_recovers_pages() -> None:
    pages = [_page(0, b"\xc5\x10"), _page(1, b"\xc5\x20\x30")]
    box = read_studybox(build_studybox(pages, b"wav"))
    assert box.version == 0x0100
    assert box.audio_type == 0
    assert box.audio == b"wav"
    assert [p.payload for p in box.pages] == [b"\xc5\x10", b"\xc5\x20\x30"]
    assert box.pages[1].data_start_position == 301


@pytest.mark.parametrize(
    "blob",
    [
        b"",
        b"XXXX\x04\x00\x00\x00\x00\x01\x00\x00",
        b"STBX\x04\x00\x00\x00\x00\x01\x00\x00",
        b"STBX\x04\x00\x00\x00\x00\x01\x00\x00PAGE\x20\x00\x00\x00",
        b"STBX\x04\x00\x00\x00\x00\x01\x00\x00JUNK\x00\x00\x00\x00",
    ],
)
def test_read_studybox_rejects_bad_input(blob: bytes) -> None:
    with pytest.raises(ValueError):
        read_studybox(blob)


def test_clean_recording_produces_container(tmp_path: Path) -> None:
    payload = b"\xc5\x00\x00\x00\x00\x01"
    samples, _ = synth_recording([payload])
    wav = WavImage.from_bytes(build_wav(samples), name="tape")
    result = decode_wav(wav)

    paths = write_outputs(result, tmp_path / "tape")
    assert paths.container == tmp_path / "tape" / "tape.studybox"
    assert paths.error_log is None and paths.page_summary is None
    assert [p.name for p in paths.page_dumps] == ["Page000 (Number=1).bin"]

    box = read_studybox(paths.container.read_bytes())
    assert len(box.pages) == 1
    assert box.pages[0].payload == payload
    blob = paths.container.read_bytes()
    assert struct.unpack_from("<I", blob, 16)[0] == 14
    assert box.audio[0x16] == 1
    assert len(box.audio) == HEADER_SIZE + 2 * len(samples)


def test_invalid_page_writes_diagnostics_only(tmp_path: Path) -> None:
    samples, _ = synth_recording([b"\xc5\x01", b"\x33\x02", b"\xc5\x03"])
    wav = WavImage.from_bytes(build_wav(samples), name="tape")
    result = decode_wav(wav)
    assert not result.all_valid

    paths = write_outputs(result, tmp_path / "tape")
    assert paths.container is None
    assert not (tmp_path / "tape" / "tape.studybox").exists()
    assert paths.error_log.read_text().startswith("== Decode log for tape ==")
    summary = paths.page_summary.read_text()
    assert "Page   1:" in summary
    assert "header=BAD" in summary
    assert "retry exhausted" in summary
    names = sorted(p.name for p in paths.page_dumps)
    assert names == ["Page000.bin", "Page001.InvalidHeader.bin", "Page002.bin"]


def test_page_summary_shows_page_id() -> None:
    samples, _ = synth_recording([b"\xc5\x00\x00\x00\x00\x2a"])
    result = decode_wav(WavImage.from_bytes(build_wav(samples), name="tape"))
    summary = render_page_summary(result)
    assert "id= 42" in summary
    assert "lead-in=" in summary and "(20 bits)" in summary


def test_page_dump_names_carry_status_and_page_number(tmp_path: Path) -> None:
    pages = [
        _page(0, b"\xc5\x00\x00\x00\x00\x09"),
        _page(1, b"\x11\x00\x00\x00\x00\x0a", valid=False),
        _page(2, b"\xc5\x01"),
    ]
    written = write_page_dumps(pages, tmp_path)
    assert [p.name for p in written] == [
        "Page000 (Number=9).bin",
        "Page001.InvalidHeader.BadData (Number=10).bin",
        "Page002.bin",
    ]
    assert written[1].read_bytes() == pages[1].payload
