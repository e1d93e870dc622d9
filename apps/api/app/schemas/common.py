"""Shared schema base classes."""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """
    camelCase on the wire, snake_case in Python.

    Requests accept either form.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class MessageResponse(CamelModel):
    ok: bool = True
    message: str


class ErrorResponse(CamelModel):
    ok: bool = False
    error: str
    kind: str | None = None
