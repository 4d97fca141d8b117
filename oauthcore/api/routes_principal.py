"""Bearer-protected endpoint describing the authenticated caller."""

from typing import Annotated

from fastapi import APIRouter, Depends

from oauthcore.api.deps import require_principal
from oauthcore.api.schemas import PrincipalResponse
from oauthcore.resource.types import Principal

router = APIRouter()


@router.get("/principal")
async def read_principal(
    principal: Annotated[Principal, Depends(require_principal)],
) -> PrincipalResponse:
    """GET /principal -- name and authorities of the bearer token."""
    return PrincipalResponse.from_principal(principal)
