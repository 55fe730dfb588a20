"""
Creation Wizard

Composes, for one user, the flow machine, session persistence, the draft
lifecycle, the progress estimator and the promotion step. Every public
operation returns an `ActionResult`; nothing raised by a collaborator
reaches the caller.

Generation runs in a background task. The wizard stays on the step that
triggered it, streams progress through the user's event emitter, and
auto-advances when the result arrives with a still-current token.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from podforge.drafts import DraftLifecycleManager, DraftState
from podforge.errors import DraftStateError, GenerationError, StorageError
from podforge.events import EventEmitter
from podforge.flow.machine import FlowStateMachine, TransitionResult
from podforge.flow.steps import GenerationKind, Intent, Step
from podforge.generation.base import GenerationService
from podforge.invalidation import ViewInvalidator
from podforge.persistence.backends import KeyValueBackend
from podforge.persistence.debounce import DebouncedSaver
from podforge.persistence.session_store import SessionPersistence, WizardSession, utcnow
from podforge.progress import DRAFT_PHASE_PLAN, Phase, PhasedProgressEstimator
from podforge.promotion import DraftPromoter
from podforge.schemas import GENERIC_FAILURE_MESSAGE, ActionResult, CurrentUser, DraftInputs
from podforge.settings import settings
from podforge.storage.base import StorageAdapter
from podforge.utils.id_generator import generate_correlation_tag

logger = logging.getLogger(__name__)

DRAFT_FIELDS = ("final_title", "final_script", "sources", "draft_id")
GENERATION_OWNED_FIELDS = ("sources", "draft_id", "narrative_options")


@dataclass
class RecoveryOffer:
    """A saved session found at mount. Nothing is applied until resume()."""
    current_step: Step
    intent: Optional[str]
    saved_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "current_step": self.current_step.value,
            "intent": self.intent,
            "saved_at": self.saved_at.isoformat(),
        }


class CreationWizard:
    def __init__(
        self,
        user_id: str,
        storage: StorageAdapter,
        session_backend: KeyValueBackend,
        generation_service: GenerationService,
        invalidator: ViewInvalidator,
        emitter: Optional[EventEmitter] = None,
        session_clock: Callable[[], datetime] = utcnow,
        progress_clock: Callable[[], float] = time.monotonic,
        save_delay: Optional[float] = None,
        generation_timeout: Optional[float] = None,
    ):
        self.user = CurrentUser(id=user_id)
        self.emitter = emitter or EventEmitter()
        self.machine = FlowStateMachine()
        self.persistence = SessionPersistence(session_backend, user_id, clock=session_clock)
        self.saver = DebouncedSaver(
            self._save_session,
            save_delay if save_delay is not None else settings.SESSION_SAVE_DEBOUNCE_SECONDS,
        )
        self.promoter = DraftPromoter(storage, invalidator)
        self._storage = storage
        self._service = generation_service
        self._progress_clock = progress_clock
        self._timeout = generation_timeout if generation_timeout is not None else settings.GENERATION_TIMEOUT_SECONDS
        self._generation_task: Optional[asyncio.Task] = None
        self._pending_recovery: Optional[WizardSession] = None
        self._last_published_progress = -1
        self.drafts = self._new_draft_manager()

    # =========================================================================
    # MOUNT & RECOVERY
    # =========================================================================

    async def mount(self) -> Optional[RecoveryOffer]:
        """Look for a saved session and offer it. Live state is not touched."""
        try:
            session = await self.persistence.load()
        except StorageError as e:
            logger.warning("[%s] Could not load wizard session for %s: %s", generate_correlation_tag(), self.user.id, e)
            return None
        if session is None:
            return None

        self._pending_recovery = session
        offer = RecoveryOffer(
            current_step=session.current_step,
            intent=session.form_data.get("intent"),
            saved_at=session.saved_at,
        )
        self.emitter.emit_recovery_available(offer.current_step.value, offer.saved_at.isoformat())
        return offer

    async def resume(self) -> ActionResult:
        session = self._pending_recovery
        if session is None:
            return ActionResult.conflict("There is no saved session to resume.")

        self._cancel_generation()
        self.machine = FlowStateMachine(form_data=session.form_data, history=session.step_history)
        self.drafts = self._new_draft_manager()
        self.drafts.restore(self.machine.form_data)
        self._pending_recovery = None
        logger.info("Resumed wizard session for %s at %s", self.user.id, session.current_step.value)
        self._emit_step()
        return ActionResult.ok("Session resumed.", data=self.snapshot())

    async def discard(self) -> ActionResult:
        """Throw away the live wizard, any pending recovery, and the stored session."""
        self._cancel_generation()
        self.saver.cancel()
        if self._pending_recovery is not None and self.drafts.state == DraftState.EMPTY:
            self.drafts.restore(self._pending_recovery.form_data)
        await self.drafts.discard()
        self._pending_recovery = None
        await self._discard_stored_session()
        self.machine.reset()
        self.drafts = self._new_draft_manager()
        self._emit_step()
        return ActionResult.ok("Session discarded.", data=self.snapshot())

    # =========================================================================
    # NAVIGATION
    # =========================================================================

    async def select_intent(self, intent: str) -> ActionResult:
        try:
            intent = Intent(intent)
        except ValueError:
            return ActionResult.invalid({"intent": "Choose one of the available intents."})

        self._cancel_generation()
        previous = self.machine.intent
        if previous is not None and previous != intent:
            await self.drafts.discard()
            self.drafts = self._new_draft_manager()

        path = self.machine.select_intent(intent)
        result = self.machine.advance()
        if not result.success:
            return self._transition_failure(result)

        await self.saver.flush()
        self._emit_step()
        return ActionResult.ok(data={**self.snapshot(), "path": [s.value for s in path]})

    async def update_fields(self, values: Dict[str, Any]) -> ActionResult:
        if "intent" in values:
            return ActionResult.invalid({"intent": "Use select_intent to change the intent."})
        owned = [k for k in GENERATION_OWNED_FIELDS if k in values]
        if owned:
            return ActionResult.invalid({k: "Set by generation; cannot be edited." for k in owned})
        if self.machine.generating is not None:
            return ActionResult.conflict("Wait for the generation to finish.")

        narrative = values.get("link_selected_narrative")
        if narrative is not None and narrative not in (self.machine.form_data.get("narrative_options") or []):
            return ActionResult.invalid({"link_selected_narrative": "Choose one of the proposed narratives."})

        draft_edit = {k: values[k] for k in ("final_title", "final_script") if k in values}
        if draft_edit and self.drafts.state in (DraftState.READY, DraftState.EDITING):
            self.drafts.edit(
                script=draft_edit.get("final_script", self.drafts.draft.script),
                title=draft_edit.get("final_title"),
            )

        self.machine.update_fields(values)
        self.saver.schedule()
        return ActionResult.ok(data=self.snapshot())

    async def advance(self, candidate: Optional[str] = None) -> ActionResult:
        if self.machine.generating is not None:
            return ActionResult.conflict("A generation is already running for this step.")
        try:
            target = Step(candidate) if candidate is not None else None
        except ValueError:
            return ActionResult.invalid({"step": "Unknown step."})

        result = self.machine.advance(target)
        return await self._after_transition(result)

    async def go_back(self) -> ActionResult:
        kind = self.machine.generating
        self.machine.go_back()
        if kind is not None:
            if kind == GenerationKind.DRAFT:
                self.drafts.cancel()
            self.emitter.emit_generation_cancelled(kind.value)
            logger.info("User %s left %s generation at %s", self.user.id, kind.value, self.machine.current_step.value)

        await self.saver.flush()
        self._emit_step()
        return ActionResult.ok(data=self.snapshot())

    async def jump_to(self, step: str, option: Optional[str] = None) -> ActionResult:
        try:
            target = Step(step)
        except ValueError:
            return ActionResult.invalid({"step": "Unknown step."})
        result = self.machine.jump_to(target, option)
        return await self._after_transition(result)

    # =========================================================================
    # DRAFT
    # =========================================================================

    async def edit_draft(self, script: str, title: Optional[str] = None) -> ActionResult:
        try:
            draft = self.drafts.edit(script=script, title=title)
        except DraftStateError:
            return ActionResult.conflict("There is no draft to edit yet.")

        self.machine.update_fields({"final_title": draft.title, "final_script": draft.script})
        self.saver.schedule()
        self.emitter.emit_draft_updated(draft.to_dict())
        return ActionResult.ok(data=self.snapshot())

    async def join_generation(self) -> ActionResult:
        """Wait for the running generation (if any) to settle."""
        task = self._generation_task
        if task is not None and not task.done():
            await asyncio.wait({task})
        return ActionResult.ok(data=self.snapshot())

    # =========================================================================
    # SUBMISSION
    # =========================================================================

    async def submit(self) -> ActionResult:
        """Promote the edited draft into production and tear the session down."""
        if self.machine.current_step != Step.FINAL_STEP:
            return ActionResult.conflict("Finish the previous steps before submitting.")

        form = self.machine.form_data
        title = form.get("final_title") or ""
        script = form.get("final_script") or ""
        draft = self.drafts.draft
        sources = [s.model_dump(mode="json") for s in draft.sources] if draft else []

        try:
            draft_id = await self.drafts.ensure_record(title, script, sources, creation_data=form)
        except StorageError as e:
            logger.error("[%s] Could not store draft before promotion for %s: %s", generate_correlation_tag(), self.user.id, e)
            return ActionResult.failed()

        result = await self.promoter.promote(self.user, draft_id, title, script, sources)
        if not result.success:
            self.machine.update_fields({"draft_id": draft_id})
            await self.saver.flush()
            return result

        self.drafts.mark_promoted()
        self.saver.cancel()
        await self._discard_stored_session()
        self.machine.reset()
        self.drafts = self._new_draft_manager()
        self._emit_step()
        self.emitter.emit_status(result.message)
        return result

    # =========================================================================
    # STATE
    # =========================================================================

    def snapshot(self) -> Dict[str, Any]:
        estimator = self.drafts.estimator if self.drafts.state == DraftState.GENERATING else None
        generating = self.machine.generating
        return {
            "current_step": self.machine.current_step.value,
            "history": [s.value for s in self.machine.history],
            "intent": self.machine.intent.value if self.machine.intent else None,
            "form_data": dict(self.machine.form_data),
            "generating": generating.value if generating else None,
            "progress": estimator.progress if estimator else None,
            "phase": estimator.phase.label if estimator else None,
            "draft_state": self.drafts.state.value,
            "draft": self.drafts.draft.to_dict() if self.drafts.draft else None,
            "metrics": self.machine.progress_metrics(),
            "recovery_pending": self._pending_recovery is not None,
        }

    async def close(self) -> None:
        self._cancel_generation()
        if self._generation_task is not None and not self._generation_task.done():
            self._generation_task.cancel()
        self.saver.cancel()

    # =========================================================================
    # GENERATION
    # =========================================================================

    async def _after_transition(self, result: TransitionResult) -> ActionResult:
        if not result.success:
            return self._transition_failure(result)

        if result.generation is not None:
            self._start_generation(result.generation, result.token)
            await self.saver.flush()
            return ActionResult.ok("Generating...", data=self.snapshot())

        await self.saver.flush()
        self._emit_step()
        return ActionResult.ok(data=self.snapshot())

    def _start_generation(self, kind: GenerationKind, token: int) -> None:
        form = self.machine.form_data
        if kind == GenerationKind.DRAFT:
            coro = self._run_draft_generation(token, DraftInputs.from_form(form))
        else:
            coro = self._run_narrative_generation(
                token, form["link_topic_a"], form["link_topic_b"], form["link_catalyst"],
            )
        self._generation_task = asyncio.create_task(coro)
        self.emitter.emit_generation_started(kind.value, token)
        logger.info("Started %s generation for %s (token %d)", kind.value, self.user.id, token)

    async def _run_draft_generation(self, token: int, inputs: DraftInputs) -> None:
        try:
            draft = await self.drafts.generate(inputs)
        except (GenerationError, DraftStateError) as e:
            self._generation_failed(GenerationKind.DRAFT, token, e)
            return

        if draft is None or token != self.machine.generation_token:
            logger.info("Discarded stale draft for %s (token %d)", self.user.id, token)
            return

        self.machine.update_fields({
            "final_title": draft.title,
            "final_script": draft.script,
            "sources": [s.model_dump(mode="json") for s in draft.sources],
            "draft_id": draft.record_id,
        })
        await self._generation_succeeded(GenerationKind.DRAFT, token)
        self.emitter.emit_draft_updated(draft.to_dict())

    async def _run_narrative_generation(self, token: int, topic_a: str, topic_b: str, catalyst: str) -> None:
        try:
            options = await asyncio.wait_for(
                self._service.generate_narrative_options(topic_a, topic_b, catalyst),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            self._generation_failed(GenerationKind.NARRATIVES, token, GenerationError("Narrative generation timed out"))
            return
        except GenerationError as e:
            self._generation_failed(GenerationKind.NARRATIVES, token, e)
            return

        if token != self.machine.generation_token:
            logger.info("Discarded stale narrative options for %s (token %d)", self.user.id, token)
            return
        if not options:
            self._generation_failed(GenerationKind.NARRATIVES, token, GenerationError("No narrative options returned"))
            return

        self.machine.update_fields({
            "narrative_options": [o.model_dump() for o in options],
            "link_selected_narrative": None,
        })
        await self._generation_succeeded(GenerationKind.NARRATIVES, token)

    async def _generation_succeeded(self, kind: GenerationKind, token: int) -> None:
        result = self.machine.finish_generation(token, success=True)
        if not result.success:
            logger.warning("Generation for %s finished but %s: %s", self.user.id, result.reason, result.errors)
            self.emitter.emit_generation_failed(kind.value, GENERIC_FAILURE_MESSAGE)
            return
        await self.saver.flush()
        self.emitter.emit_generation_completed(kind.value, result.step.value)
        self._emit_step()

    def _generation_failed(self, kind: GenerationKind, token: int, error: Exception) -> None:
        result = self.machine.finish_generation(token, success=False)
        if result.reason == "stale":
            logger.info("Ignoring failure of stale %s generation for %s: %s", kind.value, self.user.id, error)
            return
        logger.error("[%s] %s generation failed for %s: %s", generate_correlation_tag(), kind.value, self.user.id, error)
        self.emitter.emit_generation_failed(kind.value, GENERIC_FAILURE_MESSAGE)

    def _cancel_generation(self) -> None:
        kind = self.machine.generating
        if kind is None:
            return
        self.machine.cancel_generation()
        self.drafts.cancel()
        self.emitter.emit_generation_cancelled(kind.value)

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _new_draft_manager(self) -> DraftLifecycleManager:
        return DraftLifecycleManager(
            self.user.id,
            self._service,
            self._storage,
            timeout=self._timeout,
            estimator_factory=self._new_estimator,
        )

    def _new_estimator(self) -> PhasedProgressEstimator:
        self._last_published_progress = -1
        return PhasedProgressEstimator(
            DRAFT_PHASE_PLAN,
            clock=self._progress_clock,
            on_progress=self._publish_progress,
            on_phase=self._publish_phase,
        )

    def _publish_progress(self, value: float) -> None:
        # One event per whole percent
        rounded = int(value)
        if rounded == self._last_published_progress:
            return
        self._last_published_progress = rounded
        estimator = self.drafts.estimator
        self.emitter.emit_progress(value, estimator.phase.label if estimator else "")

    def _publish_phase(self, index: int, phase: Phase) -> None:
        self.emitter.emit_phase_changed(index, phase.label, phase.icon)

    def _transition_failure(self, result: TransitionResult) -> ActionResult:
        if result.errors:
            return ActionResult.invalid(result.errors, result.reason or "Some information is missing.")
        return ActionResult.conflict(result.reason)

    def _emit_step(self) -> None:
        self.emitter.emit_step_changed(
            self.machine.current_step.value,
            [s.value for s in self.machine.history],
        )

    async def _save_session(self) -> None:
        if self._pending_recovery is not None:
            # Keep the offered session intact until the user resumes or discards it
            return
        session = WizardSession(
            current_step=self.machine.current_step,
            step_history=self.machine.history,
            form_data=self.machine.form_data,
        )
        try:
            stamped = await self.persistence.save(session)
        except StorageError as e:
            logger.warning("[%s] Could not save wizard session for %s: %s", generate_correlation_tag(), self.user.id, e)
            return
        self.emitter.emit_session_saved(stamped.revision)

    async def _discard_stored_session(self) -> None:
        try:
            await self.persistence.discard()
        except StorageError as e:
            logger.warning("[%s] Could not delete wizard session for %s: %s", generate_correlation_tag(), self.user.id, e)


class WizardRegistry:
    """One wizard and one event emitter per user id, created on demand."""

    def __init__(
        self,
        storage: StorageAdapter,
        session_backend: KeyValueBackend,
        generation_service: GenerationService,
        invalidator: ViewInvalidator,
        **wizard_options,
    ):
        self._storage = storage
        self._session_backend = session_backend
        self._service = generation_service
        self._invalidator = invalidator
        self._wizard_options = wizard_options
        self._wizards: Dict[str, CreationWizard] = {}
        self._emitters: Dict[str, EventEmitter] = {}
        invalidator.add_listener(self._announce_stale_views)

    def emitter_for(self, user_id: str) -> EventEmitter:
        if user_id not in self._emitters:
            self._emitters[user_id] = EventEmitter()
        return self._emitters[user_id]

    def get(self, user_id: str) -> CreationWizard:
        wizard = self._wizards.get(user_id)
        if wizard is None:
            wizard = CreationWizard(
                user_id,
                self._storage,
                self._session_backend,
                self._service,
                self._invalidator,
                emitter=self.emitter_for(user_id),
                **self._wizard_options,
            )
            self._wizards[user_id] = wizard
        return wizard

    async def close(self) -> None:
        for wizard in self._wizards.values():
            await wizard.close()
        for emitter in self._emitters.values():
            emitter.close()
        self._wizards.clear()
        self._emitters.clear()

    def _announce_stale_views(self, user_id: str, paths: List[str]) -> None:
        emitter = self._emitters.get(user_id)
        if emitter is not None:
            emitter.emit_views_stale(paths)
