"""Response bodies of the HTTP surface. Token values are never exposed."""

from datetime import datetime

from pydantic import BaseModel, Field

from oauthcore.client.types import AuthorizedClient
from oauthcore.resource.types import Principal


class AuthorizedClientSummary(BaseModel):
    """What the caller may know about a stored authorization."""

    registration_id: str
    principal_name: str
    scopes: list[str] = Field(default_factory=list)
    expires_at: datetime | None = None
    has_refresh_token: bool = False

    @classmethod
    def from_client(cls, client: AuthorizedClient) -> "AuthorizedClientSummary":
        return cls(
            registration_id=client.registration_id,
            principal_name=client.principal_name,
            scopes=sorted(client.access_token.scopes),
            expires_at=client.access_token.expires_at,
            has_refresh_token=client.refresh_token is not None,
        )


class PrincipalResponse(BaseModel):
    """Authenticated bearer principal."""

    name: str
    authorities: list[str] = Field(default_factory=list)

    @classmethod
    def from_principal(cls, principal: Principal) -> "PrincipalResponse":
        return cls(name=principal.name, authorities=sorted(principal.authorities))
