"""
Exceptions raised by the receiving workflow.

Pre-commit validation problems are normally returned as ValidationResult
values; they only become ReceivingValidationError when a caller tries to
build or submit a receipt that does not validate.
"""
from typing import Optional

from models.result import ErrorKind, ReceivingIssue


class ReceivingError(Exception):
    """Base class for all receiving workflow errors."""


class ReceivingValidationError(ReceivingError):
    def __init__(self, issue: ReceivingIssue):
        super().__init__(issue.description)
        self.issue = issue

    @property
    def kind(self) -> ErrorKind:
        return self.issue.kind


class DataIntegrityError(ReceivingError):
    """Received quantities exceed ordered quantities. Never corrected silently."""

    kind = ErrorKind.RECEIVED_EXCEEDS_ORDERED

    def __init__(self, message: str, total_ordered: int, total_received: int):
        super().__init__(message)
        self.total_ordered = total_ordered
        self.total_received = total_received


class CommitError(ReceivingError):
    """The backend rejected the GRN. The message is the backend's own, unchanged."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class TransportError(CommitError):
    """The backend could not be reached. Treated as not applied."""


class PurchaseOrderNotFound(ReceivingError):
    pass


class SerialAllocationError(ReceivingError):
    pass


class AccountingLinkError(ReceivingError):
    """An accounting linkage field was already set on the GRN."""
