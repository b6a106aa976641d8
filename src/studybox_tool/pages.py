"""Finalized data pages and the per-file page bookkeeping."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence

logger = logging.getLogger(__name__)

HEADER_BYTE = 0xC5
PAGE_ID_OFFSET = 5


class Fault(Enum):
    SPURIOUS_TRANSITION = "spurious transition"
    SYNC_LOSS = "sync loss"
    FRAMING_VIOLATION = "framing violation"
    HEADER_MISMATCH = "header mismatch"
    RETRY_EXHAUSTED = "retry exhausted"


@dataclass(frozen=True)
class Page:
    index: int
    payload: bytes
    lead_in_position: int
    lead_in_length: int
    data_start_position: int
    header_valid: bool
    data_valid: bool
    faults: tuple[Fault, ...] = ()
    cutoff_hz: int = 0
    retries: int = 0

    @property
    def valid(self) -> bool:
        return self.header_valid and self.data_valid

    @property
    def page_id(self) -> Optional[int]:
        if len(self.payload) > PAGE_ID_OFFSET:
            return self.payload[PAGE_ID_OFFSET]
        return None

    @property
    def status_suffix(self) -> str:
        suffix = ""
        if not self.header_valid:
            suffix += ".InvalidHeader"
        if not self.data_valid:
            suffix += ".BadData"
        return suffix


def header_is_valid(payload: Sequence[int], header_byte: int = HEADER_BYTE) -> bool:
    return len(payload) > 0 and payload[0] == header_byte


class PageManager:
    """
    Collects finalized pages for one source file.

    Diagnostic text is gathered per page with ``note`` and moved into the
    file log whenever a page boundary is finalized.
    """

    def __init__(self, header_byte: int = HEADER_BYTE) -> None:
        self.header_byte = header_byte
        self.pages: List[Page] = []
        self.page_log: List[str] = []
        self.file_log: List[str] = []
        self.all_valid = True

    def note(self, message: str) -> None:
        logger.debug(message)
        self.page_log.append(message)

    def flush_log(self) -> None:
        self.file_log.extend(self.page_log)
        self.page_log = []

    def finalize(
        self,
        payload: bytes,
        *,
        lead_in_position: int,
        lead_in_length: int,
        data_start_position: int,
        failed: bool,
        faults: Sequence[Fault] = (),
        cutoff_hz: int = 0,
        retries: int = 0,
    ) -> Page | None:
        """
        Turn the in-progress payload into a Page.

        Empty payloads produce no page. The page log is flushed either way.
        """

        if not payload:
            self.flush_log()
            return None

        header_valid = header_is_valid(payload, self.header_byte)
        data_valid = not failed and lead_in_position <= data_start_position
        page_faults = list(dict.fromkeys(faults))
        if not header_valid and Fault.HEADER_MISMATCH not in page_faults:
            page_faults.append(Fault.HEADER_MISMATCH)

        page = Page(
            index=len(self.pages),
            payload=bytes(payload),
            lead_in_position=lead_in_position,
            lead_in_length=lead_in_length,
            data_start_position=data_start_position,
            header_valid=header_valid,
            data_valid=data_valid,
            faults=tuple(page_faults),
            cutoff_hz=cutoff_hz,
            retries=retries,
        )
        self.pages.append(page)

        if not page.valid:
            self.all_valid = False
            self.note(
                f"Page index {page.index} failed (start: {data_start_position}, "
                f"faults: {', '.join(f.value for f in page.faults) or 'none'})"
            )
        self.flush_log()
        return page

    @property
    def failed_pages(self) -> List[Page]:
        return [page for page in self.pages if not page.valid]
