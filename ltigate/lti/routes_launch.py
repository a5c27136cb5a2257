"""ID token validation endpoint."""

from typing import Annotated

from fastapi import APIRouter, Depends
from starlette.responses import JSONResponse

from ltigate.api.deps import get_launch_validator
from ltigate.api.schemas import LaunchRejectedResponse, LaunchRequest, LaunchResponse
from ltigate.lti.validator import LaunchValidator

router = APIRouter(prefix="/lti", tags=["lti"])

HTTP_FORBIDDEN = 403


@router.post("/launch", response_model=None)
async def launch(
    payload: LaunchRequest,
    validator: Annotated[LaunchValidator, Depends(get_launch_validator)],
) -> JSONResponse:
    """POST /lti/launch -- verify the ID token relayed from the callback page."""
    result = await validator.validate(payload.id_token, payload.state)
    if not result.success or result.session is None:
        rejected = LaunchRejectedResponse(
            error=result.error or "AuthError", details=result.details
        )
        return JSONResponse(rejected.model_dump(), status_code=HTTP_FORBIDDEN)

    body = LaunchResponse(
        session=result.session,
        launch_url=result.session.launch_url,
        target_link_uri=result.session.target_link_uri,
    )
    return JSONResponse(body.model_dump(mode="json", by_alias=True))
