import re
from typing import Annotated

from pydantic import EmailStr, Field, SecretStr, field_validator

from app.core.constants import FieldSizes
from app.schemas.base import BaseSchema, BaseTimestampSchema

USER_PASSWORD_REGEX = r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&])[A-Za-z\d@$!%*?&]{8,}$"
USER_PASSWORD_DESCRIPTION = (
    "Password must be at least 8 characters long and include at least one uppercase letter, "
    + "one lowercase letter, one number, and one special character from @$!%*?&."
)
USER_USERNAME_REGEX = r"^(?=.*\d)[A-Za-z0-9_]{3,50}$"
USER_USERNAME_DESCRIPTION = (
    "Username must be 3 to 50 characters long, contain only letters, "
    + "numbers, or underscores, and include at least one number."
)
DEFAULT_ROLE = "USER"


def validate_password_complexity(value: SecretStr) -> SecretStr:
    """Shared password rule for signup and password reset."""
    if re.match(USER_PASSWORD_REGEX, value.get_secret_value()) is None:
        raise ValueError(USER_PASSWORD_DESCRIPTION)

    return value


class UserCreate(BaseSchema):
    """User creation schema"""

    username: str
    email: EmailStr
    hashed_password: str
    first_name: str
    last_name: str
    role: str = DEFAULT_ROLE


class UserUpdate(BaseSchema):
    """User update schema"""

    hashed_password: str | None = None
    email_verified: bool | None = None
    is_active: bool | None = None


class UserSignup(BaseSchema):
    """User signup schema"""

    username: Annotated[
        str,
        Field(
            min_length=3,
            max_length=FieldSizes.USERNAME,
            description=USER_USERNAME_DESCRIPTION,
        ),
    ] = Field()
    email: Annotated[EmailStr, Field()]
    password: Annotated[
        SecretStr,
        Field(
            min_length=8,
            max_length=FieldSizes.PASSWORD,
            description=USER_PASSWORD_DESCRIPTION,
        ),
    ] = Field()
    first_name: Annotated[str, Field(max_length=FieldSizes.FIRST_NAME)] = ""
    last_name: Annotated[str, Field(max_length=FieldSizes.LAST_NAME)] = ""

    @field_validator("username")
    def validate_username(cls, value: str) -> str:
        """Validate username to ensure it contains no spaces."""
        if re.match(USER_USERNAME_REGEX, value) is None:
            raise ValueError(USER_USERNAME_DESCRIPTION)

        return value

    @field_validator("password")
    def validate_password(cls, value: SecretStr) -> SecretStr:
        """Validate password to ensure it meets complexity requirements."""
        return validate_password_complexity(value)


class UserResponse(BaseTimestampSchema):
    """User schema for API response, also the cached representation"""

    id: int
    username: str
    email: EmailStr
    first_name: str
    last_name: str
    role: str = DEFAULT_ROLE
    email_verified: bool = False
    is_active: bool = True

    @property
    def authorities(self) -> list[str]:
        return [f"ROLE_{self.role}"]
