from pydantic import BaseModel


class BadRequestResponse(BaseModel):
    detail: str = "Bad request"


class ForbiddenResponse(BaseModel):
    detail: str = "Forbidden"


class NotFoundResponse(BaseModel):
    detail: str = "Not found"


class ServiceUnavailableResponse(BaseModel):
    detail: str = "Service unavailable"


class TooManyRequestsResponse(BaseModel):
    detail: str = "Too many requests"
    remaining_seconds: int | None = None


class UnauthorizedResponse(BaseModel):
    detail: str = "Unauthorized"
    requires_captcha: bool = False


class ConflictResponse(BaseModel):
    detail: str = "Conflict"
