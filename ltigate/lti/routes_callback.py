"""Browser callback page receiving the platform's form_post response."""

import json
from string import Template
from typing import Annotated, Any

from fastapi import APIRouter, Form
from pydantic import BaseModel
from starlette.responses import HTMLResponse

from ltigate.api.deps import Platform
from ltigate.lti.errors import ValidationInputError

router = APIRouter(prefix="/lti", tags=["lti"])

MESSAGE_TYPE = "lti-launch"
CLOSE_DELAY_MS = 1000

_PAGE = Template("""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<title>Authenticating...</title>
</head>
<body>
<h1>Authenticating...</h1>
<p>Please wait while we complete the authentication process.</p>
<script>
(function () {
  var message = ${message};
  if (window.opener) {
    window.opener.postMessage(message, ${origin});
  }
  setTimeout(function () { window.close(); }, ${close_delay});
})();
</script>
</body>
</html>
""")


class _CallbackForm(BaseModel):
    """Fields of the platform's authorization response."""

    id_token: str | None = None
    state: str | None = None
    error: str | None = None
    error_description: str | None = None


def script_json(value: Any) -> str:
    """JSON-encode ``value`` so it cannot end the surrounding script element."""
    return (
        json.dumps(value)
        .replace("<", "\\u003c")
        .replace(">", "\\u003e")
        .replace("&", "\\u0026")
    )


def render_callback_page(message: dict[str, Any], origin: str) -> str:
    return _PAGE.substitute(
        message=script_json(message),
        origin=script_json(origin),
        close_delay=CLOSE_DELAY_MS,
    )


@router.post("/callback", response_model=None)
async def callback(
    config: Platform,
    form: Annotated[_CallbackForm, Form()],
) -> HTMLResponse:
    """POST /lti/callback -- hand the response to the opener window and close."""
    if form.id_token:
        message: dict[str, Any] = {
            "type": MESSAGE_TYPE,
            "id_token": form.id_token,
            "state": form.state,
        }
    elif form.error:
        message = {
            "type": MESSAGE_TYPE,
            "error": form.error,
            "error_description": form.error_description,
            "state": form.state,
        }
    else:
        raise ValidationInputError(
            "invalid_request", details=["id_token or error is required"]
        )

    return HTMLResponse(
        render_callback_page(message, config.tool_origin.rstrip("/")),
        headers={"Cache-Control": "no-store", "Referrer-Policy": "no-referrer"},
    )
