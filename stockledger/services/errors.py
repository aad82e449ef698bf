class LedgerValidationError(ValueError):
    """A proposed movement is missing or contradicts required fields."""


class InsufficientStock(ValueError):
    def __init__(self, available: int, requested: int):
        self.available = available
        self.requested = requested
        super().__init__(f"Insufficient quantity. Available: {available}, requested: {requested}")


class InvalidTransition(ValueError):
    """Approve/reject attempted on a movement that is not pending."""


class StaleRecordError(Exception):
    """The record changed between read and update."""

    def __init__(self, record_id: int, expected_version: int):
        self.record_id = record_id
        self.expected_version = expected_version
        super().__init__(f"Stock transaction {record_id} was modified concurrently (expected version {expected_version})")
