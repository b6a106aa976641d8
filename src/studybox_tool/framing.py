"""Byte framing: one 0 start bit followed by 8 data bits, MSB first."""

from __future__ import annotations

from enum import Enum

BITS_PER_BYTE = 8


class FrameResult(Enum):
    ACCEPTED = "accepted"
    BYTE_COMPLETE = "byte_complete"
    FRAMING_VIOLATION = "framing_violation"


class ByteAssembler:
    def __init__(self) -> None:
        self.payload = bytearray()
        self.reset()

    def reset(self) -> None:
        self.payload = bytearray()
        self.expect_framing = False
        self.bits_remaining = 0
        self.register = 0

    def arm(self) -> None:
        """Start waiting for the framing bit of the next byte."""

        self.expect_framing = True
        self.bits_remaining = 0
        self.register = 0

    def push(self, bit: int) -> FrameResult:
        if self.expect_framing:
            if bit != 0:
                # stay armed; the next 0 starts a byte
                return FrameResult.FRAMING_VIOLATION
            self.expect_framing = False
            self.bits_remaining = BITS_PER_BYTE
            return FrameResult.ACCEPTED

        if self.bits_remaining == 0:
            return FrameResult.ACCEPTED

        self.bits_remaining -= 1
        self.register |= (1 if bit else 0) << self.bits_remaining
        if self.bits_remaining:
            return FrameResult.ACCEPTED

        self.payload.append(self.register)
        self.register = 0
        self.expect_framing = True
        return FrameResult.BYTE_COMPLETE
