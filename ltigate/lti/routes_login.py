"""Tool-initiated OIDC login endpoint."""

from typing import Annotated

from fastapi import APIRouter, Body, Depends

from ltigate.api.deps import get_login_initiator
from ltigate.api.schemas import LoginRequest, LoginResponse
from ltigate.lti.login import LoginInitiator

router = APIRouter(prefix="/lti", tags=["lti"])


@router.post("/login")
async def login(
    initiator: Annotated[LoginInitiator, Depends(get_login_initiator)],
    payload: Annotated[LoginRequest | None, Body()] = None,
) -> LoginResponse:
    """POST /lti/login -- create a pending launch and the platform auth URL."""
    payload = payload or LoginRequest()
    result = await initiator.initiate(
        target_url=payload.target_url, login_hint=payload.login_hint
    )
    return LoginResponse(
        auth_url=result.auth_url,
        state=result.state,
        nonce=result.nonce,
        redirect_uri=result.redirect_uri,
    )
