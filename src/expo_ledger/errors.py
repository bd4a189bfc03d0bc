"""Failure taxonomy shared by the data access and business logic layers."""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for every recoverable Expo Ledger failure."""


class ValidationError(LedgerError):
    """Raised when a write is blocked by a missing or invalid field.

    ``field`` names the offending field using the document vocabulary, with a
    row index for list members (``inventory[2].productName``).
    """

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


class NotFoundError(LedgerError):
    """Raised when a referenced stall, exhibition, or entry id does not resolve."""

    def __init__(self, kind: str, key: str) -> None:
        super().__init__(f"Unknown {kind}: {key}")
        self.kind = kind
        self.key = key


class StoreError(LedgerError):
    """Raised when the backing document store cannot complete a call."""


__all__ = ["LedgerError", "ValidationError", "NotFoundError", "StoreError"]
