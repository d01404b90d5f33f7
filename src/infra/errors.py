"""Custom exception hierarchy for SalesDesk reminders.

All application-specific exceptions inherit from SalesDeskError,
which carries an error code for RPC error frame mapping.
"""

from __future__ import annotations


class SalesDeskError(Exception):
    """Base exception for all SalesDesk errors."""

    def __init__(self, message: str, *, code: str = "INTERNAL_ERROR") -> None:
        super().__init__(message)
        self.code = code


class GatewayError(SalesDeskError):
    """Errors in the Gateway / WebSocket layer."""

    def __init__(self, message: str, *, code: str = "GATEWAY_ERROR") -> None:
        super().__init__(message, code=code)


class ReminderError(SalesDeskError):
    """Errors in the reminder engine."""

    def __init__(self, message: str, *, code: str = "REMINDER_ERROR") -> None:
        super().__init__(message, code=code)


class MalformedCandidateError(ReminderError):
    """A feed document could not be mapped to a reminder candidate."""

    def __init__(self, message: str, *, doc_id: str = "") -> None:
        super().__init__(message, code="MALFORMED_CANDIDATE")
        self.doc_id = doc_id


class StorageError(SalesDeskError):
    """Errors in the persistent key-value store."""

    def __init__(self, message: str, *, code: str = "STORAGE_ERROR") -> None:
        super().__init__(message, code=code)


class LedgerError(ReminderError):
    """Errors in the dismissal ledger."""

    def __init__(self, message: str, *, code: str = "LEDGER_ERROR") -> None:
        super().__init__(message, code=code)


class LedgerWriteError(LedgerError):
    """Raised when a dismissal could not be persisted."""

    def __init__(self, message: str = "Failed to persist dismissal") -> None:
        super().__init__(message, code="LEDGER_WRITE_FAILED")
