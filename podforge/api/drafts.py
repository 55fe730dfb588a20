"""
Drafts REST API

The user's stored, unpromoted drafts.
"""

from typing import Optional

from fastapi import APIRouter, Depends

from podforge.api.deps import get_current_user, get_services, respond
from podforge.drafts import delete_draft, list_user_drafts
from podforge.schemas import CurrentUser
from podforge.services import Services

router = APIRouter(prefix="/api/drafts", tags=["drafts"])


@router.get("")
async def list_drafts(
    user: Optional[CurrentUser] = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """List the current user's drafts, newest first."""
    return respond(await list_user_drafts(services.storage, user.id if user else None))


@router.delete("/{draft_id}")
async def remove_draft(
    draft_id: str,
    user: Optional[CurrentUser] = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return respond(await delete_draft(services.storage, user.id if user else None, draft_id))
