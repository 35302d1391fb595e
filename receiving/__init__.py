from .errors import (
    ReceivingError, ReceivingValidationError, DataIntegrityError, CommitError,
    TransportError, PurchaseOrderNotFound, SerialAllocationError, AccountingLinkError,
)
from .serials import SerialAllocator, resize_serial_slots
from .validator import ReceivingValidator
from .builder import GRNBuilder
from .database import Database
from .backend import GRNBackend, HttpGRNBackend, SqliteGRNBackend
from .session import ReceivingSession

__all__ = [
    "ReceivingError", "ReceivingValidationError", "DataIntegrityError", "CommitError",
    "TransportError", "PurchaseOrderNotFound", "SerialAllocationError", "AccountingLinkError",
    "SerialAllocator", "resize_serial_slots", "ReceivingValidator", "GRNBuilder",
    "Database", "GRNBackend", "HttpGRNBackend", "SqliteGRNBackend", "ReceivingSession",
]
