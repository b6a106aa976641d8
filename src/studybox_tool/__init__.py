"""
Top-level package for Study Box cassette decoding.

Recovers data pages from 16-bit stereo recordings of Study Box tapes and
bundles them with a mono copy of the audio into ``.studybox`` containers.
"""

from .clock import ClockType, clock_events, clock_map, detect_clock
from .container import (
    StudyBox,
    StudyBoxPage,
    build_studybox,
    read_studybox,
    render_error_log,
    render_page_summary,
    write_outputs,
)
from .decoder import (
    DecodeResult,
    DecodeSession,
    DecoderConfig,
    GapBand,
    Outcome,
    RetryFilter,
    classify_gap,
    decode_file,
    decode_wav,
)
from .framing import ByteAssembler, FrameResult
from .pages import Fault, Page, PageManager
from .samples import SampleBuffer, SampleStore, high_pass
from .wav import WavFormatError, WavHeader, WavImage

__all__ = [
    "__version__",
    "WavImage",
    "WavHeader",
    "WavFormatError",
    "ClockType",
    "detect_clock",
    "clock_map",
    "clock_events",
    "SampleBuffer",
    "SampleStore",
    "high_pass",
    "ByteAssembler",
    "FrameResult",
    "Fault",
    "Page",
    "PageManager",
    "DecoderConfig",
    "GapBand",
    "Outcome",
    "RetryFilter",
    "classify_gap",
    "DecodeSession",
    "DecodeResult",
    "decode_wav",
    "decode_file",
    "StudyBox",
    "StudyBoxPage",
    "build_studybox",
    "read_studybox",
    "render_error_log",
    "render_page_summary",
    "write_outputs",
]

__version__ = "0.0.1"
