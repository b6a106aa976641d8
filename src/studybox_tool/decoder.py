"""
Clock-gap decoding of Study Box data tracks.

Each accepted clock contributes the gap (in samples) since the previous
one. Gaps in the normal band map to one or two bits through a run-length
table keyed by the previous bit; longer gaps either invalidate the current
track or mark a page boundary. A page that ends invalid is decoded again
from the last page boundary with a stronger high-pass filter, at most
``max_retries`` times.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, Sequence

import numpy as np

from .clock import AMPLITUDE_THRESHOLD, REACH, ClockType
from .framing import ByteAssembler, FrameResult
from .pages import HEADER_BYTE, Fault, Page, PageManager
from .samples import SAMPLE_RATE_HZ, SampleBuffer, SampleStore
from .wav import WavImage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DecoderConfig:
    amplitude_threshold: int = AMPLITUDE_THRESHOLD
    min_gap: int = 6
    one_cell_max: int = 11
    two_cell_max: int = 15
    normal_max: int = 20
    oversized_max: int = 1000
    sync_loss_max: int = 70_000
    lead_in_min_zeros: int = 10
    max_retries: int = 2
    filter_step_hz: int = 250
    sample_rate: int = SAMPLE_RATE_HZ
    header_byte: int = HEADER_BYTE


DEFAULT_CONFIG = DecoderConfig()


class GapBand(Enum):
    SPURIOUS = "spurious"
    NORMAL = "normal"
    OVERSIZED = "oversized"
    SYNC_LOSS = "sync_loss"
    HARD_BOUNDARY = "hard_boundary"


class Outcome(Enum):
    CONTINUE = "continue"
    PAGE_INVALID = "page_invalid"
    PAGE_BOUNDARY = "page_boundary"


def classify_gap(gap: int, config: DecoderConfig = DEFAULT_CONFIG) -> GapBand:
    if gap < config.min_gap:
        return GapBand.SPURIOUS
    if gap <= config.normal_max:
        return GapBand.NORMAL
    if gap <= config.oversized_max:
        return GapBand.OVERSIZED
    if gap <= config.sync_loss_max:
        return GapBand.SYNC_LOSS
    return GapBand.HARD_BOUNDARY


@dataclass
class DecodeState:
    last_clock: int = 0
    last_bit: int = 0
    track_started: bool = False
    zero_run: int = 0
    zero_run_start: int = 0
    lead_in_position: int = 0
    lead_in_length: int = 0
    data_start: Optional[int] = None
    failed: bool = False
    faults: List[Fault] = field(default_factory=list)
    assembler: ByteAssembler = field(default_factory=ByteAssembler)

    def reset(self) -> None:
        """Clear everything except the clock position, which the scan owns."""

        self.last_bit = 0
        self.track_started = False
        self.zero_run = 0
        self.zero_run_start = 0
        self.lead_in_position = 0
        self.lead_in_length = 0
        self.data_start = None
        self.failed = False
        self.faults = []
        self.assembler.reset()

    @property
    def payload(self) -> bytes:
        return bytes(self.assembler.payload)


class BitTimingMachine:
    """Turns accepted clock gaps into bits and bytes for the current page."""

    def __init__(
        self, config: DecoderConfig = DEFAULT_CONFIG, pages: PageManager | None = None
    ) -> None:
        self.config = config
        self.pages = pages if pages is not None else PageManager(config.header_byte)
        self.state = DecodeState()

    def page_invalid(self) -> bool:
        payload = self.state.assembler.payload
        return self.state.failed or (
            len(payload) > 0 and payload[0] != self.config.header_byte
        )

    def _fail(self, fault: Fault, message: str) -> Outcome:
        self.state.failed = True
        self.state.faults.append(fault)
        self.pages.note(message)
        return Outcome.PAGE_INVALID

    def _emit(self, bits: Sequence[int], position: int) -> Outcome:
        outcome = Outcome.CONTINUE
        for bit in bits:
            if self.state.track_started:
                result = self.state.assembler.push(bit)
                if result is FrameResult.FRAMING_VIOLATION:
                    outcome = self._fail(
                        Fault.FRAMING_VIOLATION,
                        f"0 bit expected (start of byte marker): {position}",
                    )
            self.state.last_bit = bit
        return outcome

    def _start_track(self, position: int) -> None:
        state = self.state
        state.track_started = True
        if state.data_start is None:
            state.data_start = position
        state.lead_in_position = state.zero_run_start
        state.lead_in_length = state.zero_run
        state.assembler.arm()
        state.last_bit = 1
        self.pages.note(
            f"Started new data track at: {position} "
            f"(lead-in {state.zero_run} bits from {state.zero_run_start})"
        )

    def _decode_after_one(self, gap: int, position: int) -> Outcome:
        cfg = self.config
        if gap <= cfg.one_cell_max:
            return self._emit((1,), position)
        if gap <= cfg.two_cell_max:
            return self._emit((0, 0), position)
        return self._emit((0, 1), position)

    def _decode_after_zero(self, gap: int, position: int) -> Outcome:
        cfg = self.config
        state = self.state
        if gap <= cfg.one_cell_max:
            if not state.track_started:
                if state.zero_run == 0:
                    state.zero_run_start = position
                state.zero_run += 1
            return self._emit((0,), position)

        if gap <= cfg.two_cell_max:
            if state.track_started:
                return self._emit((1,), position)
            if state.zero_run > cfg.lead_in_min_zeros:
                self._start_track(position)
            else:
                logger.debug(
                    "Rejected track start at %d after %d zero bits",
                    position,
                    state.zero_run,
                )
                state.zero_run = 0
                state.last_bit = 0
            return Outcome.CONTINUE

        # three half-cells cannot follow a 0
        state.zero_run = 0
        if state.track_started:
            return self._fail(Fault.SYNC_LOSS, f"Gap too large (after 0): {position}")
        return Outcome.CONTINUE

    def feed(self, position: int, gap: int) -> Outcome:
        """Consume one accepted clock ``gap`` samples after the previous one."""

        band = classify_gap(gap, self.config)
        if band in (GapBand.SYNC_LOSS, GapBand.HARD_BOUNDARY):
            return Outcome.PAGE_BOUNDARY
        if band is GapBand.SPURIOUS:
            return Outcome.CONTINUE

        if band is GapBand.OVERSIZED:
            outcome = Outcome.CONTINUE
            if self.state.track_started:
                outcome = self._fail(Fault.SYNC_LOSS, f"Gap too large: {position}")
        elif self.state.last_bit == 1:
            outcome = self._decode_after_one(gap, position)
        else:
            outcome = self._decode_after_zero(gap, position)

        if not self.state.track_started:
            self.state.last_bit = 0
        return outcome


class RetryFilter:
    """
    Bounded filter-retry step.

    The counter only grows until ``max_retries`` and is cleared when a page
    is finalized, so each page is scanned at most ``max_retries + 1`` times.
    """

    def __init__(self, max_retries: int = 2, step_hz: int = 250) -> None:
        self.max_retries = max_retries
        self.step_hz = step_hz
        self.count = 0

    @property
    def cutoff_hz(self) -> int:
        return self.step_hz * self.count

    @property
    def exhausted(self) -> bool:
        return self.count >= self.max_retries

    def should_retry(self, page_invalid: bool) -> bool:
        return page_invalid and not self.exhausted

    def advance(self) -> int:
        if self.exhausted:
            raise RuntimeError("retry budget already spent for this page")
        self.count += 1
        return self.cutoff_hz

    def reset(self) -> None:
        self.count = 0


@dataclass
class DecodeResult:
    name: str
    pages: List[Page]
    all_valid: bool
    log: List[str]
    sample_count: int
    cutoffs_used: tuple[int, ...] = ()
    spurious_clocks: int = 0
    source: WavImage | None = None

    @property
    def failed_pages(self) -> List[Page]:
        return [page for page in self.pages if not page.valid]


class DecodeSession:
    """Decode state for one source recording."""

    def __init__(
        self,
        samples: Sequence[int] | np.ndarray,
        config: DecoderConfig = DEFAULT_CONFIG,
        name: str = "<memory>",
    ) -> None:
        self.config = config
        self.name = name
        self.store = SampleStore(
            samples,
            sample_rate=config.sample_rate,
            threshold=config.amplitude_threshold,
        )
        self.pages = PageManager(config.header_byte)
        self.machine = BitTimingMachine(config, self.pages)
        self.retry = RetryFilter(config.max_retries, config.filter_step_hz)
        self.buffer: SampleBuffer = self.store.original
        self.last_save_position = 0
        self.spurious_clocks = 0

    @classmethod
    def from_wav(
        cls, wav: WavImage, config: DecoderConfig = DEFAULT_CONFIG
    ) -> "DecodeSession":
        return cls(wav.right_channel(), config=config, name=wav.name)

    @property
    def state(self) -> DecodeState:
        return self.machine.state

    def _finalize(self, position: int) -> Page | None:
        state = self.state
        invalid = self.machine.page_invalid()
        faults = list(state.faults)
        if invalid and self.retry.exhausted:
            faults.append(Fault.RETRY_EXHAUSTED)
        data_start = state.data_start if state.data_start is not None else 0

        page = self.pages.finalize(
            state.payload,
            lead_in_position=state.lead_in_position,
            lead_in_length=state.lead_in_length,
            data_start_position=data_start,
            failed=state.failed,
            faults=faults,
            cutoff_hz=self.buffer.cutoff_hz,
            retries=self.retry.count,
        )
        self.last_save_position = position
        self.retry.reset()
        state.reset()
        self.buffer = self.store.original
        return page

    def _begin_retry(self) -> int:
        cutoff = self.retry.advance()
        self.pages.note(
            f"Retrying page from {self.last_save_position} with {cutoff} Hz "
            f"high-pass (attempt {self.retry.count})"
        )
        self.state.reset()
        self.buffer = self.store.buffer(cutoff)
        self.state.last_clock = self.last_save_position - 2
        return max(self.last_save_position, REACH)

    def run(self) -> DecodeResult:
        state = self.state
        last_type = ClockType.NONE
        position = REACH

        while True:
            events = self.buffer.event_positions
            kinds = self.buffer.clocks
            k = int(np.searchsorted(events, position))
            resume: int | None = None

            while k < len(events):
                i = int(events[k])
                k += 1
                kind = int(kinds[i])
                # same direction twice in a row is one noisy transition
                if kind == last_type:
                    continue

                gap = i - state.last_clock
                band = classify_gap(gap, self.config)
                if band is GapBand.SPURIOUS:
                    self.spurious_clocks += 1
                    if state.track_started:
                        state.faults.append(Fault.SPURIOUS_TRANSITION)
                        logger.debug("Gap between clocks too small, ignoring: %d", i)
                    continue

                state.last_clock = i
                # a clock after a hard boundary gap leaves the debounce direction alone
                if band is not GapBand.HARD_BOUNDARY:
                    last_type = kind

                if self.machine.feed(i, gap) is not Outcome.PAGE_BOUNDARY:
                    continue
                if self.retry.should_retry(self.machine.page_invalid()):
                    resume = self._begin_retry()
                    break
                active = self.buffer
                self._finalize(i)
                if self.buffer is not active:
                    # back on the unfiltered samples
                    resume = i + 1
                    break

            if resume is None:
                break
            position = resume

        self._finalize(0)
        return self._result()

    def _result(self) -> DecodeResult:
        pages = list(self.pages.pages)
        failed = len(self.pages.failed_pages)
        if failed:
            logger.info(
                "%s: failed %d of %d pages (%d%%)",
                self.name,
                failed,
                len(pages),
                failed * 100 // len(pages),
            )
        return DecodeResult(
            name=self.name,
            pages=pages,
            all_valid=self.pages.all_valid,
            log=list(self.pages.file_log),
            sample_count=len(self.store.original),
            cutoffs_used=self.store.cutoffs,
            spurious_clocks=self.spurious_clocks,
        )


def decode_wav(wav: WavImage, config: DecoderConfig = DEFAULT_CONFIG) -> DecodeResult:
    result = DecodeSession.from_wav(wav, config).run()
    result.source = wav
    return result


def decode_file(
    path: Path | str, config: DecoderConfig = DEFAULT_CONFIG
) -> DecodeResult:
    return decode_wav(WavImage.from_file(path), config)
