from pydantic import ConfigDict
from pydantic.alias_generators import to_camel

from app.schemas.base import BaseSchema


class CsrfToken(BaseSchema):
    """Self-contained CSRF token and where clients must send it"""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )

    header_name: str
    parameter_name: str
    token: str
