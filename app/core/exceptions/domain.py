from app.core.exceptions.base import CustomException

# =============================================================================
# Generic Domain Exceptions (raised by Services, caught by Endpoints)
# =============================================================================


class ValidationError(CustomException):
    """Business rule validation failure."""

    def __init__(self, message: str = "Validation failed", exception: Exception | None = None):
        super().__init__(message, exception)


class ResourceNotFoundError(CustomException):
    """Requested resource does not exist."""

    def __init__(self, message: str = "Resource not found", exception: Exception | None = None):
        super().__init__(message, exception)


class DuplicateResourceError(CustomException):
    """Attempted to create a resource that already exists."""

    def __init__(
        self, message: str = "Resource already exists", exception: Exception | None = None
    ):
        super().__init__(message, exception)
