"""
Collections REST API
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends

from podforge.api.deps import get_current_user, get_services, respond
from podforge.schemas import CurrentUser
from podforge.services import Services

router = APIRouter(prefix="/api/collections", tags=["collections"])


@router.get("")
async def list_collections(
    user: Optional[CurrentUser] = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """The current user's collections with item counts."""
    return respond(await services.collections.list_collections(user))


@router.post("")
async def create_collection(
    payload: Dict[str, Any] = Body(...),
    user: Optional[CurrentUser] = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Create a collection together with its items; all or nothing."""
    return respond(await services.collections.create_collection(user, payload))


@router.post("/{collection_id}/items/{podcast_id}/toggle")
async def toggle_item(
    collection_id: str,
    podcast_id: str,
    user: Optional[CurrentUser] = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return respond(await services.collections.toggle_item(user, collection_id, podcast_id))
