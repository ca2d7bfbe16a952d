from __future__ import annotations


class AppError(Exception):
    """Base application error."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(detail)


class NotFoundError(AppError):
    pass


class ForbiddenError(AppError):
    pass


class ConflictError(AppError):
    pass


class ValidationError(AppError):
    pass


class UnconfirmedMessageError(ConflictError):
    """Mutation attempted on a message that still carries a temp id."""


class PersistenceError(AppError):
    """Transient failure talking to the persistence layer."""
