"""
Draft Lifecycle Manager

    EMPTY → GENERATING → READY → EDITING → PROMOTED
                 ↑          │        │
                 └──────────┴────────┘   (regenerate)
    any non-terminal state → DISCARDED

Owns the generated artifact for one wizard. Every `generate()` call takes a
fresh token; a result that comes back after the token moved on (the user
backed out, discarded, or started another generation) is dropped without
touching the draft.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from podforge.errors import DraftStateError, GenerationError, StorageError
from podforge.generation.base import GenerationService
from podforge.progress import PhasedProgressEstimator
from podforge.schemas import ActionResult, DraftInputs, ResearchSource
from podforge.settings import settings
from podforge.storage.base import StorageAdapter
from podforge.utils.id_generator import generate_correlation_tag

logger = logging.getLogger(__name__)


class DraftState(str, Enum):
    EMPTY = "empty"
    GENERATING = "generating"
    READY = "ready"
    EDITING = "editing"
    PROMOTED = "promoted"
    DISCARDED = "discarded"


TERMINAL_STATES = (DraftState.PROMOTED, DraftState.DISCARDED)
GENERATABLE_STATES = (DraftState.EMPTY, DraftState.READY, DraftState.EDITING)
EDITABLE_STATES = (DraftState.READY, DraftState.EDITING)


@dataclass
class Draft:
    title: str
    script: str
    sources: List[ResearchSource] = field(default_factory=list)
    record_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "script": self.script,
            "sources": [s.model_dump(mode="json") for s in self.sources],
            "record_id": self.record_id,
        }


class DraftLifecycleManager:
    def __init__(
        self,
        user_id: str,
        generation_service: GenerationService,
        storage: StorageAdapter,
        timeout: Optional[float] = None,
        estimator_factory: Optional[Callable[[], PhasedProgressEstimator]] = None,
    ):
        self.user_id = user_id
        self.state = DraftState.EMPTY
        self.draft: Optional[Draft] = None
        self.estimator: Optional[PhasedProgressEstimator] = None
        self._service = generation_service
        self._storage = storage
        self._timeout = timeout if timeout is not None else settings.GENERATION_TIMEOUT_SECONDS
        self._estimator_factory = estimator_factory or PhasedProgressEstimator
        self._token = 0
        self._state_before_generation = DraftState.EMPTY
        self._progress_task: Optional[asyncio.Task] = None

    @property
    def token(self) -> int:
        return self._token

    # =========================================================================
    # GENERATION
    # =========================================================================

    async def generate(self, inputs: DraftInputs) -> Optional[Draft]:
        """
        Generate a draft from normalized inputs.

        Returns the new draft, or None when the result arrived stale.
        Raises `DraftStateError` on re-entry and `GenerationError` when the
        service fails or times out (the previous state is restored first).
        """
        if self.state == DraftState.GENERATING:
            raise DraftStateError("A draft is already being generated")
        if self.state not in GENERATABLE_STATES:
            raise DraftStateError(f"Cannot generate from state {self.state.value}")

        self._token += 1
        token = self._token
        self._state_before_generation = self.state
        self.state = DraftState.GENERATING
        self._start_progress()

        try:
            generated = await asyncio.wait_for(self._service.generate_draft(inputs), timeout=self._timeout)
        except asyncio.TimeoutError:
            if token != self._token:
                return None
            self._abort_generation()
            raise GenerationError(f"Draft generation timed out after {self._timeout:.0f}s")
        except GenerationError:
            if token != self._token:
                return None
            self._abort_generation()
            raise

        if token != self._token:
            logger.info("Dropping stale draft result for %s (token %d, current %d)", self.user_id, token, self._token)
            return None

        draft = Draft(title=generated.title, script=generated.script, sources=list(generated.sources))
        # Still GENERATING here, so a cancel or discard during the insert wins
        record_id = await self._persist_record(inputs, draft)
        if token != self._token:
            logger.info("Dropping stale draft result for %s after storing it", self.user_id)
            if record_id:
                await self._delete_record_quietly(record_id)
            return None

        previous_record = self.draft.record_id if self.draft else None
        draft.record_id = record_id
        self.draft = draft
        self.state = DraftState.READY
        self._finish_progress()
        if previous_record:
            await self._delete_record_quietly(previous_record)
        return self.draft

    def cancel(self) -> bool:
        """
        Leave the GENERATING state without waiting for the external call.
        Its result will be discarded when it arrives.
        """
        if self.state != DraftState.GENERATING:
            return False
        self._token += 1
        self._abort_generation()
        return True

    # =========================================================================
    # EDITING & TERMINAL TRANSITIONS
    # =========================================================================

    def edit(self, script: str, title: Optional[str] = None) -> Draft:
        if self.state not in EDITABLE_STATES or self.draft is None:
            raise DraftStateError(f"Cannot edit a draft in state {self.state.value}")
        self.draft.script = script
        if title is not None:
            self.draft.title = title
        self.state = DraftState.EDITING
        return self.draft

    async def discard(self) -> None:
        """Clear the draft. Deleting the stored record is best-effort."""
        if self.state in TERMINAL_STATES:
            return
        self._token += 1
        if self.state == DraftState.GENERATING:
            self._stop_progress(cancel=True)

        record_id = self.draft.record_id if self.draft else None
        self.draft = None
        self.state = DraftState.DISCARDED
        if record_id:
            await self._delete_record_quietly(record_id)

    def mark_promoted(self) -> None:
        if self.state in TERMINAL_STATES:
            raise DraftStateError(f"Cannot promote a draft in state {self.state.value}")
        self.state = DraftState.PROMOTED

    def restore(self, form_data: Dict[str, Any]) -> Optional[Draft]:
        """Rebuild a READY draft from a resumed session's form data."""
        script = form_data.get("final_script")
        if not script:
            return None
        self.draft = Draft(
            title=form_data.get("final_title") or "",
            script=script,
            sources=[ResearchSource(**s) for s in form_data.get("sources") or []],
            record_id=form_data.get("draft_id"),
        )
        self.state = DraftState.READY
        return self.draft

    async def ensure_record(
        self,
        title: str,
        script: str,
        sources: List[Dict[str, Any]],
        creation_data: Dict[str, Any],
    ) -> str:
        """
        Return the id of a stored draft record holding this content, creating
        one when none exists (own-script path, or a failed background save).
        Raises `StorageError`.
        """
        record_id = self.draft.record_id if self.draft else None
        if record_id:
            rows = await self._storage.select("drafts", {"id": record_id, "user_id": self.user_id})
            if rows:
                return record_id

        row = await self._storage.insert("drafts", {
            "user_id": self.user_id,
            "title": title,
            "script_text": script,
            "creation_data": creation_data,
            "sources": sources,
        })
        if self.draft is None:
            self.draft = Draft(title=title, script=script, sources=[ResearchSource(**s) for s in sources])
            self.state = DraftState.EDITING
        self.draft.record_id = row["id"]
        return row["id"]

    # =========================================================================
    # HELPERS
    # =========================================================================

    async def _persist_record(self, inputs: DraftInputs, draft: Draft) -> Optional[str]:
        """Store the generated draft; None when the insert failed."""
        try:
            row = await self._storage.insert("drafts", {
                "user_id": self.user_id,
                "title": draft.title,
                "script_text": draft.script,
                "creation_data": inputs.raw_inputs,
                "sources": [s.model_dump(mode="json") for s in draft.sources],
            })
        except StorageError as e:
            logger.warning("[%s] Could not store draft record for %s: %s", generate_correlation_tag(), self.user_id, e)
            return None
        return row["id"]

    async def _delete_record_quietly(self, record_id: str) -> None:
        try:
            await self._storage.delete("drafts", {"id": record_id, "user_id": self.user_id})
        except StorageError as e:
            logger.warning("[%s] Orphaned draft record %s for %s: %s", generate_correlation_tag(), record_id, self.user_id, e)

    def _abort_generation(self) -> None:
        self.state = self._state_before_generation
        self._stop_progress(cancel=True)

    def _start_progress(self) -> None:
        self.estimator = self._estimator_factory()
        self.estimator.start()
        self._progress_task = asyncio.create_task(self.estimator.run())

    def _finish_progress(self) -> None:
        if self.estimator:
            self.estimator.complete()
        self._stop_progress(cancel=False)

    def _stop_progress(self, cancel: bool) -> None:
        if self.estimator and cancel:
            self.estimator.cancel()
        if self._progress_task is not None and not self._progress_task.done():
            self._progress_task.cancel()
        self._progress_task = None


# =============================================================================
# STORED DRAFTS
# =============================================================================

async def list_user_drafts(storage: StorageAdapter, user_id: Optional[str]) -> ActionResult:
    """The user's unpromoted drafts, newest first."""
    if not user_id:
        return ActionResult.auth_required()
    try:
        rows = await storage.select(
            "drafts", {"user_id": user_id, "status": "draft"}, order_by="created_at", descending=True,
        )
    except StorageError as e:
        logger.error("[%s] list_user_drafts failed for %s: %s", generate_correlation_tag(), user_id, e)
        return ActionResult.failed()
    return ActionResult.ok(data=[
        {
            "id": row["id"],
            "title": row["title"],
            "script_text": row["script_text"],
            "creation_data": row.get("creation_data") or {},
            "sources": row.get("sources") or [],
            "created_at": row["created_at"].isoformat() if row.get("created_at") else None,
        }
        for row in rows
    ])


async def delete_draft(storage: StorageAdapter, user_id: Optional[str], draft_id: str) -> ActionResult:
    """Delete one of the user's drafts. Filtering on the owner doubles as the ownership check."""
    if not user_id:
        return ActionResult.auth_required()
    try:
        deleted = await storage.delete("drafts", {"id": draft_id, "user_id": user_id})
    except StorageError as e:
        logger.error("[%s] delete_draft(%s) failed for %s: %s", generate_correlation_tag(), draft_id, user_id, e)
        return ActionResult.failed()
    if not deleted:
        return ActionResult.not_found("Draft not found.")
    return ActionResult.ok("Draft deleted.")
