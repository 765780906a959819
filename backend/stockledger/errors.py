# Overview: Error taxonomy shared by every ledger operation and the HTTP boundary.

"""
Ledger error taxonomy (authoritative)

- ValidationError, UnknownMethodError: malformed input. No side effects.
- InsufficientStockError: business-rule rejection. No side effects.
- NotFoundError: referenced entity absent. No side effects.
- AlreadyCancelledError, NotCancellableError: state-machine violations. No side effects.
- StorageError: transient infrastructure failure. The unit of work rolled back,
  nothing was committed, the caller may retry.

Only StorageError is retryable. Deterministic errors must never be retried.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for all errors raised by the ledger engine."""

    code = "ledger_error"
    http_status = 400
    retryable = False

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"error": self.message, "code": self.code, "retryable": self.retryable}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(LedgerError):
    """400-level input problem."""

    code = "validation_error"


class UnknownMethodError(LedgerError):
    """Unsupported costing method string."""

    code = "unknown_method"


class InsufficientStockError(LedgerError):
    code = "insufficient_stock"
    http_status = 409


class NotFoundError(LedgerError):
    code = "not_found"
    http_status = 404

    def __init__(self, entity: str, entity_id):
        super().__init__(f"{entity} {entity_id} not found", details={"entity": entity, "id": entity_id})


class AlreadyCancelledError(LedgerError):
    code = "already_cancelled"
    http_status = 409


class NotCancellableError(LedgerError):
    """Completed and paid transactions must go through a refund instead."""

    code = "not_cancellable"
    http_status = 409


class StorageError(LedgerError):
    """Transient storage failure; the enclosing unit of work was rolled back."""

    code = "storage_error"
    http_status = 503
    retryable = True


class ImmutableRecordError(RuntimeError):
    """Raised when code tries to mutate an append-only ledger row."""
