class ApplicationError(Exception):
    """Base application-layer error, independent from transport concerns."""


class UnauthorizedError(ApplicationError):
    """Raised when no authenticated identity can be resolved for the caller."""


class ForbiddenError(ApplicationError):
    """Raised when the resolved identity lacks a required permission or scope."""


class NotFoundError(ApplicationError):
    """Raised when an expected entity does not exist (or is outside the caller's scope)."""


class ConflictError(ApplicationError):
    """Raised when a uniqueness or state conflict occurs."""


class ValidationError(ApplicationError):
    """Raised when application-level validation fails, before any state is mutated."""
