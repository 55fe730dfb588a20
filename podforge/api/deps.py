"""
Shared dependencies for the REST routers.
"""

from typing import Optional

from fastapi import Header, Request
from fastapi.responses import JSONResponse

from podforge.schemas import ActionResult, CurrentUser, ErrorCode
from podforge.services import Services
from podforge.wizard import WizardRegistry

STATUS_BY_CODE = {
    ErrorCode.VALIDATION: 422,
    ErrorCode.AUTH: 401,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.CONFLICT: 409,
    ErrorCode.EXTERNAL: 502,
}


# --- Temporary: Get user_id from header (will be replaced with real auth) ---

def get_current_user(
    user_id: Optional[str] = Header(None, alias="user-id", description="Authenticated user id"),
) -> Optional[CurrentUser]:
    """
    Temporary: Returns the user passed in the header, or None when absent.
    Operations answer a missing user with an "Authentication required." result.
    """
    if not user_id or not user_id.strip():
        return None
    return CurrentUser(id=user_id.strip())


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_registry(request: Request) -> WizardRegistry:
    return request.app.state.registry


def respond(result: ActionResult) -> JSONResponse:
    """Serialize an ActionResult with the status code its error code maps to."""
    status = 200 if result.success else STATUS_BY_CODE.get(result.code, 400)
    return JSONResponse(status_code=status, content=result.model_dump(mode="json"))
