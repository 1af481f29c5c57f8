"""
Exception types for connector operations.
"""


class ConnectorException(Exception):
    """Base exception for all connector errors."""

    pass


class RateLimitException(ConnectorException):
    """Raised when API rate limit is exceeded."""

    pass


class RateLimitCritical(ConnectorException):
    """Raised when the remaining quota is too low to start a run."""

    def __init__(self, remaining: int, required: int):
        super().__init__(
            f"Rate limit too low to start ({remaining} remaining). "
            f"Need at least {required}."
        )
        self.remaining = remaining
        self.required = required


class AuthenticationException(ConnectorException):
    """Raised when authentication fails."""

    pass


class NotFoundException(ConnectorException):
    """Raised when a resource is not found."""

    pass


class APIException(ConnectorException):
    """Raised when API returns an error."""

    pass


# A single detail/files fetch that failed after retries.
TransientApiError = APIException
