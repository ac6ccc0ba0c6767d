"""Ledger error taxonomy.

Every failure surfaced by the billing core is a ``LedgerError``. The HTTP
layer maps the subclasses to status codes; the CLI prints ``message``.
"""

from __future__ import annotations

from typing import Any, Optional


class LedgerError(Exception):
    """Base exception for ledger errors."""

    kind = "ledger_error"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.kind, "detail": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(LedgerError):
    """Missing or invalid input; raised before any write begins."""

    kind = "validation_error"


class NotFoundError(LedgerError):
    """A referenced invoice, appointment or billing code does not exist."""

    kind = "not_found"


class ConflictError(LedgerError):
    """Invoice-number collision or double-invoicing of billed items."""

    kind = "conflict"


class EmptyError(LedgerError):
    """Nothing to convert into an invoice."""

    kind = "empty"


class PersistenceError(LedgerError):
    """Store unavailable or timed out; the transaction was rolled back."""

    kind = "persistence_error"
