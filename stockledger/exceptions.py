"""
Error taxonomy for the Stock Ledger service.

Every error carries a machine-readable ``kind`` and a human message so the
request layer can render it without inspecting the exception type.
"""


class LedgerError(Exception):
    """Base class for all ledger and query failures."""
    kind = "ledger_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.kind, "detail": self.message}


class ValidationError(LedgerError):
    """Malformed input: zero quantity, blank reason, bad id."""
    kind = "validation_error"


class NotFound(LedgerError):
    """Referenced product or actor does not exist."""
    kind = "not_found"


class InsufficientStock(LedgerError):
    """The adjustment would drive stock below zero."""
    kind = "insufficient_stock"

    def __init__(self, product_id: int, current_stock: int, quantity: int):
        super().__init__(
            f"Insufficient stock for product {product_id}: "
            f"available {current_stock}, requested change {quantity}"
        )
        self.product_id = product_id
        self.current_stock = current_stock
        self.quantity = quantity


class Contention(LedgerError):
    """Concurrent writers kept winning until the retry budget ran out."""
    kind = "contention"


class StorageUnavailable(LedgerError):
    """The underlying store could not be reached or failed mid-operation."""
    kind = "storage_unavailable"


class ImmutableRecordError(LedgerError):
    """Raised when code tries to modify or delete a stored movement."""
    kind = "immutable_record"
