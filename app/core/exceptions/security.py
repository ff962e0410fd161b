from app.core.exceptions.base import CustomException


class SecurityException(CustomException):
    """
    Base exception for the token and key lifecycle
    """

    def __init__(self, message, exception: Exception | None = None):
        super().__init__(message, exception)


class ConfigurationError(SecurityException):
    """
    Keys directory cannot be created or written. Fatal at startup.
    """

    def __init__(self, message, exception: Exception | None = None):
        super().__init__(message, exception)


class KeyInitializationError(ConfigurationError):
    """
    Keypair generation, persistence or self-test failed
    """

    def __init__(self, message, exception: Exception | None = None):
        super().__init__(message, exception)


class TokenError(SecurityException):
    """
    Base exception for rejected bearer tokens
    """

    def __init__(self, message, exception: Exception | None = None):
        super().__init__(message, exception)


class TokenInvalidError(TokenError):
    """
    Bad signature, malformed token, algorithm or issuer mismatch
    """

    def __init__(self, message: str = "Invalid token", exception: Exception | None = None):
        super().__init__(message, exception)


class TokenExpiredError(TokenError):
    """
    Signature is valid but the token is past its expiry
    """

    def __init__(self, message: str = "Token has expired", exception: Exception | None = None):
        super().__init__(message, exception)


class AuthenticationFailedError(SecurityException):
    """
    Credentials or refresh token rejected. The message stays generic.
    """

    def __init__(
        self, message: str = "Invalid credentials", exception: Exception | None = None
    ):
        super().__init__(message, exception)


class StoreUnavailableError(SecurityException):
    """
    Redis could not be reached while evaluating a security control
    """

    def __init__(
        self,
        message: str = "Security store is unavailable",
        exception: Exception | None = None,
    ):
        super().__init__(message, exception)
