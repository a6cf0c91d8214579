"""Exception types the API layer maps onto HTTP status codes.

ValueError (and subclasses) means a bad request and is mapped to 400 by the
error-handling middleware, so validation errors subclass it directly.
"""


class NotFoundError(Exception):
    """A referenced resource does not exist (404)."""


class ConflictError(Exception):
    """The request collides with existing state (409)."""


class InvalidMessageRequestError(ValueError):
    """A message request is missing required fields."""

    def __init__(self, missing_fields: list[str]) -> None:
        self.missing_fields = missing_fields
        super().__init__(f"Missing required fields: {', '.join(missing_fields)}")


class InvalidPaginationError(ValueError):
    """Page and page size must both be at least 1."""


class ThreadNotFoundError(NotFoundError):
    """No conversation thread with the given id exists for the tenant."""


class MalformedPayloadError(ValueError):
    """A webhook body could not be parsed into a message."""


class UnsupportedPlatformError(ValueError):
    """No adapter is registered for the requested platform id."""


class IntegrationNotFoundError(NotFoundError):
    """No app integration with the given id exists for the tenant."""


class DuplicateIntegrationError(ConflictError):
    """An integration with the same tenant, agent, activation and name exists."""
