"""
Wizard REST API

Commands for the current user's creation wizard. Progress and step changes
are streamed separately over /ws/wizard.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from podforge.api.deps import get_current_user, get_registry, respond
from podforge.schemas import ActionResult, CurrentUser
from podforge.wizard import WizardRegistry

router = APIRouter(prefix="/api/wizard", tags=["wizard"])


# --- Pydantic Schemas ---

class IntentRequest(BaseModel):
    intent: str


class FieldsRequest(BaseModel):
    values: Dict[str, Any] = Field(default_factory=dict)


class AdvanceRequest(BaseModel):
    candidate: Optional[str] = None


class JumpRequest(BaseModel):
    step: str
    option: Optional[str] = None


class DraftEditRequest(BaseModel):
    script: str
    title: Optional[str] = None


# --- Endpoints ---

@router.get("")
async def get_wizard(
    user: Optional[CurrentUser] = Depends(get_current_user),
    registry: WizardRegistry = Depends(get_registry),
):
    """Current snapshot of the user's wizard."""
    if user is None:
        return respond(ActionResult.auth_required())
    return respond(ActionResult.ok(data=registry.get(user.id).snapshot()))


@router.post("/mount")
async def mount_wizard(
    user: Optional[CurrentUser] = Depends(get_current_user),
    registry: WizardRegistry = Depends(get_registry),
):
    """Check for a saved session. The caller decides between resume and discard."""
    if user is None:
        return respond(ActionResult.auth_required())
    offer = await registry.get(user.id).mount()
    return respond(ActionResult.ok(data={"recovery": offer.to_dict() if offer else None}))


@router.post("/resume")
async def resume_wizard(
    user: Optional[CurrentUser] = Depends(get_current_user),
    registry: WizardRegistry = Depends(get_registry),
):
    if user is None:
        return respond(ActionResult.auth_required())
    return respond(await registry.get(user.id).resume())


@router.post("/discard")
async def discard_wizard(
    user: Optional[CurrentUser] = Depends(get_current_user),
    registry: WizardRegistry = Depends(get_registry),
):
    if user is None:
        return respond(ActionResult.auth_required())
    return respond(await registry.get(user.id).discard())


@router.post("/intent")
async def select_intent(
    body: IntentRequest,
    user: Optional[CurrentUser] = Depends(get_current_user),
    registry: WizardRegistry = Depends(get_registry),
):
    if user is None:
        return respond(ActionResult.auth_required())
    return respond(await registry.get(user.id).select_intent(body.intent))


@router.patch("/fields")
async def update_fields(
    body: FieldsRequest,
    user: Optional[CurrentUser] = Depends(get_current_user),
    registry: WizardRegistry = Depends(get_registry),
):
    if user is None:
        return respond(ActionResult.auth_required())
    return respond(await registry.get(user.id).update_fields(body.values))


@router.post("/advance")
async def advance(
    body: AdvanceRequest,
    user: Optional[CurrentUser] = Depends(get_current_user),
    registry: WizardRegistry = Depends(get_registry),
):
    if user is None:
        return respond(ActionResult.auth_required())
    return respond(await registry.get(user.id).advance(body.candidate))


@router.post("/back")
async def go_back(
    user: Optional[CurrentUser] = Depends(get_current_user),
    registry: WizardRegistry = Depends(get_registry),
):
    if user is None:
        return respond(ActionResult.auth_required())
    return respond(await registry.get(user.id).go_back())


@router.post("/jump")
async def jump_to(
    body: JumpRequest,
    user: Optional[CurrentUser] = Depends(get_current_user),
    registry: WizardRegistry = Depends(get_registry),
):
    if user is None:
        return respond(ActionResult.auth_required())
    return respond(await registry.get(user.id).jump_to(body.step, body.option))


@router.patch("/draft")
async def edit_draft(
    body: DraftEditRequest,
    user: Optional[CurrentUser] = Depends(get_current_user),
    registry: WizardRegistry = Depends(get_registry),
):
    if user is None:
        return respond(ActionResult.auth_required())
    return respond(await registry.get(user.id).edit_draft(body.script, body.title))


@router.get("/generation")
async def join_generation(
    user: Optional[CurrentUser] = Depends(get_current_user),
    registry: WizardRegistry = Depends(get_registry),
):
    """Block until the running generation settles, then return the snapshot."""
    if user is None:
        return respond(ActionResult.auth_required())
    return respond(await registry.get(user.id).join_generation())


@router.post("/submit")
async def submit(
    user: Optional[CurrentUser] = Depends(get_current_user),
    registry: WizardRegistry = Depends(get_registry),
):
    if user is None:
        return respond(ActionResult.auth_required())
    return respond(await registry.get(user.id).submit())
