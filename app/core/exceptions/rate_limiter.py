from app.core.exceptions.base import CustomException


class RateLimiterException(CustomException):
    """
    Base exception for the endpoint rate limiter
    """

    def __init__(self, message, exception: Exception | None = None):
        super().__init__(message, exception)


class RateLimitConfigurationError(RateLimiterException):
    """
    Non-positive limit or window passed to the rate limiter
    """

    def __init__(self, message, exception: Exception | None = None):
        super().__init__(message, exception)
