from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from app.core.constants import FieldSizes
from app.models.base import Base


class User(Base):
    """User model, identified by email in every token"""

    username: Mapped[str] = mapped_column(
        String(FieldSizes.USERNAME),
        unique=True,
        nullable=False,
    )
    email: Mapped[str] = mapped_column(
        String(FieldSizes.EMAIL),
        unique=True,
        index=True,
        nullable=False,
    )
    hashed_password: Mapped[str] = mapped_column(
        String(FieldSizes.PASSWORD_HASH),
        nullable=False,
    )
    first_name: Mapped[str] = mapped_column(String(FieldSizes.FIRST_NAME), default="")
    last_name: Mapped[str] = mapped_column(String(FieldSizes.LAST_NAME), default="")
    role: Mapped[str] = mapped_column(String(FieldSizes.ROLE), default="USER", nullable=False)
    email_verified: Mapped[bool] = mapped_column(Boolean(), default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean(), default=True, nullable=False)
