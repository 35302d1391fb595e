"""
Serial number allocation for received tires.

Each physical unit gets one serial. Operators either type serials in
(always upper-cased) or generate a batch of the form

    {BRAND[:3]}-{size with '/' -> '-'}-{last 6 digits of epoch ms}-{seq:03d}

e.g. MIC-295-80R22.5-123456-001. The clock is injected so generation is
deterministic under test, and every batch is checked against serials
already issued for the same purchase order before it is accepted.
"""
import logging
import time
from typing import Callable, Iterable, Optional

from models.receiving import ReceivingLineDraft
from .errors import SerialAllocationError

logger = logging.getLogger(__name__)

DEFAULT_FALLBACK_PREFIX = "TIR"
MAX_ATTEMPTS = 50


def epoch_millis() -> int:
    return time.time_ns() // 1_000_000


def normalise_serial(value: Optional[str]) -> str:
    return (value or "").strip().upper()


def resize_serial_slots(serials: list[str], new_qty: int) -> list[str]:
    """
    Grow with blank slots or truncate from the end.

    Values in retained slots are kept as entered.
    """
    new_qty = max(0, new_qty)
    current = list(serials or [])
    if new_qty > len(current):
        return current + [""] * (new_qty - len(current))
    return current[:new_qty]


def set_serial(draft: ReceivingLineDraft, index: int, value: str) -> str:
    """Store an operator-entered serial in slot `index` (upper-cased)."""
    if index < 0 or index >= draft.current_receive_quantity:
        raise IndexError(
            f"Serial slot {index} out of range for line {draft.po_line_id} "
            f"({draft.current_receive_quantity} slots)"
        )
    serials = resize_serial_slots(draft.serial_numbers, draft.current_receive_quantity)
    serials[index] = (value or "").upper()
    draft.serial_numbers = serials
    return serials[index]


def collect_issued(
    drafts: Iterable[ReceivingLineDraft],
    exclude: Optional[ReceivingLineDraft] = None,
) -> set[str]:
    """Serials already entered on the other lines of a receiving session."""
    issued: set[str] = set()
    for draft in drafts:
        if draft is exclude:
            continue
        issued.update(normalise_serial(sn) for sn in draft.entered_serials)
    return issued


class SerialAllocator:
    """
    Generates batches of serial numbers for a draft line.

    Usage:
        allocator = SerialAllocator()
        serials = allocator.generate_batch(draft, issued=already_used)
    """

    def __init__(
        self,
        clock: Callable[[], int] = epoch_millis,
        fallback_prefix: str = DEFAULT_FALLBACK_PREFIX,
        max_attempts: int = MAX_ATTEMPTS,
    ):
        self.clock = clock
        self.fallback_prefix = fallback_prefix
        self.max_attempts = max(1, max_attempts)

    def brand_prefix(self, draft: ReceivingLineDraft) -> str:
        brand = (draft.brand or draft.line.brand or "").strip()
        return brand[:3].upper() if brand else self.fallback_prefix

    @staticmethod
    def size_token(size: str) -> str:
        return (size or "").strip().replace("/", "-")

    def build(self, draft: ReceivingLineDraft, millis: int) -> list[str]:
        suffix = str(millis)[-6:].zfill(6)
        prefix = f"{self.brand_prefix(draft)}-{self.size_token(draft.line.size)}-{suffix}"
        return [
            f"{prefix}-{seq:03d}"
            for seq in range(1, draft.current_receive_quantity + 1)
        ]

    def generate_batch(
        self,
        draft: ReceivingLineDraft,
        issued: Iterable[str] = (),
    ) -> list[str]:
        """
        Overwrite every serial slot on the draft with a generated batch.

        If any generated serial is already in `issued`, the time suffix is
        moved forward one millisecond and the batch rebuilt.
        """
        if draft.current_receive_quantity <= 0:
            draft.serial_numbers = []
            return []

        taken = {normalise_serial(sn) for sn in issued if sn and sn.strip()}
        start = self.clock()
        for attempt in range(self.max_attempts):
            serials = self.build(draft, start + attempt)
            if taken.isdisjoint(serials):
                if attempt:
                    logger.info(
                        "Line %s: serial batch collided %d time(s), suffix advanced",
                        draft.po_line_id, attempt,
                    )
                draft.serial_numbers = serials
                logger.debug(
                    "Line %s: generated %d serials (%s .. %s)",
                    draft.po_line_id, len(serials), serials[0], serials[-1],
                )
                return list(serials)

        raise SerialAllocationError(
            f"Could not generate {draft.current_receive_quantity} unique serials "
            f"for line {draft.po_line_id} after {self.max_attempts} attempts"
        )
