"""Domain exceptions raised by the core managers.

Routers translate these into HTTP status codes; the managers themselves stay
free of FastAPI imports.
"""


class ConsoleError(Exception):
    """Base exception for console management errors."""


class NotFoundError(ConsoleError):
    """Raised when a referenced user, group, session or record does not exist."""


class ConflictError(ConsoleError):
    """Raised when creating something that already exists."""


class ValidationError(ConsoleError):
    """Raised when a request is well-formed but not allowed in the current state."""


class AuthenticationError(ConsoleError):
    """Raised when supplied credentials do not match."""
