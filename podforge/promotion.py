"""
Promotion Coordinator

Two handovers from working state into the permanent catalog:

(a) Collection creation, a two-phase write with compensation:
      validate → insert header → insert items
    If the items fail, the header is deleted again before failure is
    reported, so no collection is ever left without items.

(b) Draft promotion, delegated to the storage adapter's atomic
    `promote_draft` procedure. On failure the draft is left as it was.

Backend error text only ever reaches the log, tagged with a correlation id.
"""

import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from podforge.errors import StorageError
from podforge.flow.config import STEP_REQUIRED_FIELDS
from podforge.flow.steps import Step
from podforge.flow.validation import validate_fields
from podforge.invalidation import ViewInvalidator
from podforge.schemas import ActionResult, CollectionCreate, CurrentUser
from podforge.storage.base import StorageAdapter
from podforge.utils.id_generator import generate_correlation_tag

logger = logging.getLogger(__name__)


def field_errors(error: ValidationError) -> Dict[str, str]:
    """Flatten pydantic errors into a field → message map."""
    errors: Dict[str, str] = {}
    for item in error.errors():
        name = ".".join(str(part) for part in item["loc"]) or "payload"
        errors.setdefault(name, item["msg"])
    return errors


class CollectionCoordinator:
    def __init__(self, storage: StorageAdapter, invalidator: ViewInvalidator):
        self._storage = storage
        self._invalidator = invalidator

    async def create_collection(self, user: Optional[CurrentUser], payload: Dict[str, Any]) -> ActionResult:
        if user is None:
            return ActionResult.auth_required()

        try:
            data = CollectionCreate.model_validate(payload)
        except ValidationError as e:
            return ActionResult.invalid(field_errors(e), "Invalid collection data.")

        tag = generate_correlation_tag()

        # Phase 1: header
        try:
            header = await self._storage.insert("collections", {
                "owner_id": user.id,
                "title": data.title,
                "description": data.description,
                "is_public": data.is_public,
                "cover_image_url": data.cover_image_url,
            })
        except StorageError as e:
            logger.error("[%s] Collection header insert failed for %s: %s", tag, user.id, e)
            return ActionResult.failed()

        # Phase 2: items, strictly after the header id is known
        collection_id = header["id"]
        try:
            for position, podcast_id in enumerate(data.item_ids):
                await self._storage.insert("collection_items", {
                    "collection_id": collection_id,
                    "podcast_id": podcast_id,
                    "position": position,
                })
        except StorageError as e:
            logger.error("[%s] Collection items insert failed for %s (collection %s): %s", tag, user.id, collection_id, e)
            await self._compensate(collection_id, tag)
            return ActionResult.failed()

        await self._invalidator.invalidate(user.id)
        logger.info("Collection %s created for %s with %d items", collection_id, user.id, len(data.item_ids))
        return ActionResult.ok("Collection created.", data={"id": collection_id, "item_count": len(data.item_ids)})

    async def toggle_item(self, user: Optional[CurrentUser], collection_id: str, podcast_id: str) -> ActionResult:
        """Pin a podcast to one of the user's collections, or unpin it if already there."""
        if user is None:
            return ActionResult.auth_required()

        tag = generate_correlation_tag()
        try:
            collections = await self._storage.select("collections", {"id": collection_id})
            if not collections or collections[0]["owner_id"] != user.id:
                return ActionResult.not_found("Collection not found.")

            items = await self._storage.select("collection_items", {"collection_id": collection_id})
            existing = [item for item in items if item["podcast_id"] == podcast_id]
            if existing:
                if len(items) == 1:
                    return ActionResult.conflict("A collection needs at least one podcast.")
                await self._storage.delete("collection_items", {"collection_id": collection_id, "podcast_id": podcast_id})
                message, pinned = "Removed from collection.", False
            else:
                position = max((item["position"] for item in items), default=-1) + 1
                await self._storage.insert("collection_items", {
                    "collection_id": collection_id,
                    "podcast_id": podcast_id,
                    "position": position,
                })
                message, pinned = "Saved to collection.", True
        except StorageError as e:
            logger.error("[%s] toggle_item(%s, %s) failed for %s: %s", tag, collection_id, podcast_id, user.id, e)
            return ActionResult.failed()

        await self._invalidator.invalidate(user.id)
        return ActionResult.ok(message, data={"collection_id": collection_id, "podcast_id": podcast_id, "pinned": pinned})

    async def list_collections(self, user: Optional[CurrentUser]) -> ActionResult:
        if user is None:
            return ActionResult.auth_required()
        try:
            collections = await self._storage.select(
                "collections", {"owner_id": user.id}, order_by="updated_at", descending=True,
            )
            result = []
            for collection in collections:
                items = await self._storage.select("collection_items", {"collection_id": collection["id"]})
                result.append({
                    "id": collection["id"],
                    "title": collection["title"],
                    "is_public": collection["is_public"],
                    "item_count": len(items),
                })
        except StorageError as e:
            logger.error("[%s] list_collections failed for %s: %s", generate_correlation_tag(), user.id, e)
            return ActionResult.failed()
        return ActionResult.ok(data=result)

    async def _compensate(self, collection_id: str, tag: str) -> None:
        try:
            await self._storage.delete("collection_items", {"collection_id": collection_id})
            await self._storage.delete("collections", {"id": collection_id})
            logger.info("[%s] Rolled back collection %s", tag, collection_id)
        except StorageError as e:
            logger.error("[%s] Rollback of collection %s failed, header may be orphaned: %s", tag, collection_id, e)


class DraftPromoter:
    def __init__(self, storage: StorageAdapter, invalidator: ViewInvalidator):
        self._storage = storage
        self._invalidator = invalidator

    async def promote(
        self,
        user: Optional[CurrentUser],
        draft_id: str,
        title: str,
        script: str,
        sources: List[Dict[str, Any]],
    ) -> ActionResult:
        if user is None:
            return ActionResult.auth_required()

        errors = validate_fields(
            {"final_title": title, "final_script": script},
            STEP_REQUIRED_FIELDS[Step.SCRIPT_EDITING],
        )
        if errors:
            return ActionResult.invalid(errors)

        tag = generate_correlation_tag()
        try:
            result = await self._storage.promote_draft(draft_id, user.id, title, script, sources)
        except StorageError as e:
            logger.error("[%s] promote_draft(%s) failed for %s: %s", tag, draft_id, user.id, e)
            return ActionResult.failed()

        if not result.success:
            logger.warning("[%s] promote_draft(%s) rejected for %s: %s", tag, draft_id, user.id, result.message)
            return ActionResult.failed()

        await self._invalidator.invalidate(user.id)
        logger.info("Draft %s promoted to %s for %s", draft_id, result.new_record_id, user.id)
        return ActionResult.ok(
            result.message or "Production started.",
            data={"podcast_id": result.new_record_id},
        )
