"""Exceptions raised by the price intelligence engine."""


class PriceTrackerError(Exception):
    """Base class for price tracker errors."""


class LineValidationError(PriceTrackerError, ValueError):
    """Raised when an invoice line fails validation before any state changes."""

    def __init__(self, errors: list[str], line: dict | None = None):
        self.errors = errors
        self.line = line or {}
        super().__init__("Invalid invoice line: " + "; ".join(errors))


class IngestionError(PriceTrackerError):
    """Raised when a line cannot be written to storage."""

    def __init__(self, message: str, tenant_id: str, vendor_id: str, item_number: str):
        self.tenant_id = tenant_id
        self.vendor_id = vendor_id
        self.item_number = item_number
        super().__init__(f"{message} ({tenant_id}/{vendor_id}/{item_number})")


class ItemMatchingError(IngestionError):
    """Raised when canonical item resolution fails on a storage error."""
