from __future__ import annotations


class AppError(Exception):
    """Base application error."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(detail)


class InvalidInputError(AppError):
    pass


class NotFoundError(AppError):
    pass


class BusyError(AppError):
    """Another send for the same conversation and sender is still in flight."""


class SubscriptionError(AppError):
    """A live query failed (transport or permission)."""


class PartialWriteFailure(AppError):
    """Message was persisted but the conversation summary update was not."""
