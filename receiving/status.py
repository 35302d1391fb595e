"""
Purchase Order status policy.

Lifecycle:

    DRAFT -> APPROVED / ORDERED -> PARTIALLY_RECEIVED -> FULLY_RECEIVED -> CLOSED
    CANCELLED is reachable from any state before FULLY_RECEIVED.

Only next_status() is used by the receiving workflow; approval, closing
and cancellation are separate actions owned by the backend.
"""
import logging

from models.purchase_order import PurchaseOrderStatus as S
from .errors import DataIntegrityError

logger = logging.getLogger(__name__)

RECEIVABLE_STATUSES = frozenset({S.DRAFT, S.APPROVED, S.ORDERED, S.PARTIALLY_RECEIVED})

TRANSITIONS: dict[S, frozenset] = {
    S.DRAFT:              frozenset({S.APPROVED, S.ORDERED, S.PARTIALLY_RECEIVED, S.FULLY_RECEIVED, S.CANCELLED}),
    S.APPROVED:           frozenset({S.ORDERED, S.PARTIALLY_RECEIVED, S.FULLY_RECEIVED, S.CANCELLED}),
    S.ORDERED:            frozenset({S.PARTIALLY_RECEIVED, S.FULLY_RECEIVED, S.CANCELLED}),
    S.PARTIALLY_RECEIVED: frozenset({S.PARTIALLY_RECEIVED, S.FULLY_RECEIVED, S.CANCELLED}),
    S.FULLY_RECEIVED:     frozenset({S.CLOSED}),
    S.CLOSED:             frozenset(),
    S.CANCELLED:          frozenset(),
}


def is_receivable(status: S) -> bool:
    return S(status) in RECEIVABLE_STATUSES


def can_transition(current: S, target: S) -> bool:
    return S(target) in TRANSITIONS[S(current)]


def next_status(current: S, total_ordered: int, total_received_after: int) -> S:
    """
    Status the order should take once a receipt has been applied.

    Raises DataIntegrityError rather than guessing when the received
    total exceeds the ordered total.
    """
    current = S(current)
    if total_ordered < 0 or total_received_after < 0:
        raise DataIntegrityError(
            f"Negative quantities (ordered={total_ordered}, received={total_received_after})",
            total_ordered, total_received_after,
        )
    if total_received_after > total_ordered:
        logger.error(
            "Received total %d exceeds ordered total %d", total_received_after, total_ordered
        )
        raise DataIntegrityError(
            f"Received quantity ({total_received_after}) exceeds "
            f"ordered quantity ({total_ordered})",
            total_ordered, total_received_after,
        )
    if total_received_after == 0:
        return current
    if total_received_after < total_ordered:
        return S.PARTIALLY_RECEIVED
    return S.FULLY_RECEIVED
