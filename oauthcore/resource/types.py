"""Type definitions for validated bearer tokens."""

from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict, Field


class Principal(BaseModel):
    """Authenticated caller derived from a validated token."""

    model_config = ConfigDict(frozen=True)

    name: str
    authorities: frozenset[str] = frozenset()
    attributes: dict[str, Any] = Field(default_factory=dict)
    token_value: str = Field(default="", repr=False)


class IntrospectionResponse(BaseModel):
    """RFC 7662 introspection response. Unknown members are kept."""

    model_config = ConfigDict(extra="allow")

    active: bool = False
    scope: str | list[str] | None = None
    sub: str | None = None
    username: str | None = None
    client_id: str | None = None
    exp: int | float | None = None


class TokenValidator(Protocol):
    """Turns a raw bearer token into a Principal or raises InvalidToken."""

    async def validate(self, token: str) -> Principal: ...
