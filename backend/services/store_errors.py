class StoreError(Exception):
    """A store operation failed; ``message`` is safe to show to the user."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class SubscriptionValidationError(StoreError):
    """The record was rejected before anything was sent to the store."""


class ImportValidationError(SubscriptionValidationError):
    """An import file failed the pre-commit shape check; nothing was written."""


class NotFoundError(StoreError):
    """The addressed subscription or task does not exist."""
