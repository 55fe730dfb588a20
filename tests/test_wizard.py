"""
End-to-end tests for the creation wizard: navigation, background generation,
session recovery and submission, all against in-memory collaborators.
"""

import asyncio
import logging

import pytest

from podforge.drafts import DraftState
from podforge.events import EventType
from podforge.flow.steps import Step
from podforge.invalidation import ViewInvalidator
from podforge.persistence.session_store import SessionPersistence
from podforge.schemas import GENERIC_FAILURE_MESSAGE, ErrorCode
from podforge.wizard import CreationWizard, WizardRegistry
from tests.conftest import drain


def second_wizard(wizard, storage, session_backend, service, invalidator, session_clock, progress_clock):
    """Another wizard for the same user, as after a page reload."""
    return CreationWizard(
        "user-1",
        storage,
        session_backend,
        service,
        invalidator,
        session_clock=session_clock,
        progress_clock=progress_clock,
        save_delay=0.01,
        generation_timeout=5,
    )


async def walk_reflect_to_details(wizard):
    assert (await wizard.select_intent("reflect")).success
    await wizard.update_fields({"legacy_lesson": "Patience beats talent over a long career."})
    assert (await wizard.advance()).data["current_step"] == "TONE_SELECTION"
    await wizard.update_fields({"selected_tone": "narrative"})
    assert (await wizard.advance()).data["current_step"] == "DETAILS_STEP"
    await wizard.update_fields({"duration": "short", "narrative_depth": "balanced"})


async def walk_reflect_to_editing(wizard):
    await walk_reflect_to_details(wizard)
    result = await wizard.advance()
    assert result.message == "Generating..."
    await wizard.join_generation()
    assert wizard.machine.current_step == Step.SCRIPT_EDITING


async def walk_editing_to_final(wizard):
    assert (await wizard.advance()).data["current_step"] == "AUDIO_STUDIO_STEP"
    await wizard.update_fields({"voice_gender": "female", "voice_style": "calm"})
    assert (await wizard.advance()).data["current_step"] == "FINAL_STEP"


def event_types(events):
    return [event.type for event in events]


class TestFullFlow:
    """Tests for walking a whole path through to production."""

    async def test_reflect_path_to_submission(self, wizard, storage, service, invalidations):
        queue = wizard.emitter.subscribe()
        await walk_reflect_to_editing(wizard)

        form = wizard.machine.form_data
        assert form["final_title"] == service.draft.title
        assert form["sources"][0]["url"] == "https://example.org/sleep"
        assert form["draft_id"] is not None
        assert service.draft_calls[0].topic == "Patience beats talent over a long career."

        await walk_editing_to_final(wizard)
        result = await wizard.submit()

        assert result.success
        assert result.message == "Production started."
        podcasts = await storage.select("podcasts", {"id": result.data["podcast_id"]})
        assert podcasts[0]["title"] == service.draft.title
        assert await storage.select("drafts", {}) == []
        assert wizard.machine.current_step == Step.SELECTING_INTENT
        assert wizard.machine.form_data == {}
        assert "/u/user-1" in invalidations[-1][1]

        events = drain(queue)
        types = event_types(events)
        assert EventType.GENERATION_STARTED in types
        assert EventType.GENERATION_COMPLETED in types
        assert EventType.DRAFT_UPDATED in types
        phases = [e.phase for e in events if e.type == EventType.PHASE_CHANGED]
        assert phases[0] == "Researching"
        progress = [e.progress for e in events if e.type == EventType.PROGRESS]
        assert progress[0] == 0
        assert progress[-1] == 100

    async def test_submit_clears_stored_session(self, wizard, session_backend, session_clock):
        await walk_reflect_to_editing(wizard)
        await walk_editing_to_final(wizard)
        await wizard.submit()

        fresh = SessionPersistence(session_backend, "user-1", clock=session_clock)
        assert await fresh.load() is None

    async def test_submit_before_final_step_is_rejected(self, wizard):
        await walk_reflect_to_details(wizard)
        result = await wizard.submit()
        assert result.code == ErrorCode.CONFLICT

    async def test_submit_failure_keeps_draft_and_step(self, wizard, storage):
        await walk_reflect_to_editing(wizard)
        await walk_editing_to_final(wizard)
        storage.fail_promote = True

        result = await wizard.submit()

        assert not result.success
        assert result.message == GENERIC_FAILURE_MESSAGE
        assert wizard.machine.current_step == Step.FINAL_STEP
        assert len(await storage.select("drafts", {})) == 1
        assert await storage.select("podcasts", {}) == []

        storage.fail_promote = False
        assert (await wizard.submit()).success

    async def test_edits_reach_the_promoted_podcast(self, wizard, storage):
        await walk_reflect_to_editing(wizard)
        result = await wizard.edit_draft("My own take on the generated script, much improved.", title="Patience")
        assert result.success
        assert wizard.drafts.state == DraftState.EDITING

        await walk_editing_to_final(wizard)
        submitted = await wizard.submit()
        podcast = (await storage.select("podcasts", {"id": submitted.data["podcast_id"]}))[0]
        assert podcast["title"] == "Patience"
        assert podcast["script_text"].startswith("My own take")

    async def test_client_cannot_rewrite_generated_sources(self, wizard, storage):
        await walk_reflect_to_editing(wizard)
        draft_id = wizard.machine.form_data["draft_id"]

        result = await wizard.update_fields({
            "sources": [{"title": "Planted", "url": "https://attacker.example/"}],
            "draft_id": "DRF_someoneelse",
        })
        assert result.code == ErrorCode.VALIDATION
        assert set(result.errors) == {"sources", "draft_id"}
        assert wizard.machine.form_data["draft_id"] == draft_id

        await walk_editing_to_final(wizard)
        submitted = await wizard.submit()
        podcast = (await storage.select("podcasts", {"id": submitted.data["podcast_id"]}))[0]
        assert [s["url"] for s in podcast["sources"]] == ["https://example.org/sleep"]


class TestGeneration:
    """Tests for background generation and stale results."""

    async def test_advance_while_generating_is_rejected(self, wizard, service):
        service.gate = asyncio.Event()
        await walk_reflect_to_details(wizard)
        await wizard.advance()

        result = await wizard.advance()
        assert result.code == ErrorCode.CONFLICT
        assert (await wizard.update_fields({"duration": "long"})).code == ErrorCode.CONFLICT

        service.gate.set()
        await wizard.join_generation()
        assert wizard.machine.current_step == Step.SCRIPT_EDITING

    async def test_snapshot_reports_progress_while_generating(self, wizard, service, progress_clock):
        service.gate = asyncio.Event()
        await walk_reflect_to_details(wizard)
        await wizard.advance()
        await asyncio.sleep(0.01)

        snapshot = wizard.snapshot()
        assert snapshot["generating"] == "draft"
        assert snapshot["current_step"] == "DETAILS_STEP"
        assert snapshot["phase"] == "Researching"
        assert 0 <= snapshot["progress"] < 35

        service.gate.set()
        await wizard.join_generation()

    async def test_back_during_generation_drops_late_result(self, wizard, service, storage):
        service.gate = asyncio.Event()
        await walk_reflect_to_details(wizard)
        await wizard.advance()
        await asyncio.sleep(0.01)
        queue = wizard.emitter.subscribe()

        result = await wizard.go_back()
        assert result.data["current_step"] == "DETAILS_STEP"
        assert result.data["generating"] is None

        service.gate.set()
        await wizard.join_generation()

        assert wizard.machine.current_step == Step.DETAILS_STEP
        assert "final_script" not in wizard.machine.form_data
        assert wizard.drafts.draft is None
        assert await storage.select("drafts", {}) == []
        types = event_types(drain(queue))
        assert EventType.GENERATION_CANCELLED in types
        assert EventType.GENERATION_COMPLETED not in types

    async def test_back_while_draft_is_being_stored_drops_it(self, wizard, storage):
        storage.insert_gates["drafts"] = asyncio.Event()
        await walk_reflect_to_details(wizard)
        await wizard.advance()
        await asyncio.sleep(0.01)
        assert storage.inserts == ["drafts"]

        await wizard.go_back()
        storage.insert_gates["drafts"].set()
        await wizard.join_generation()

        assert wizard.machine.current_step == Step.DETAILS_STEP
        assert wizard.drafts.draft is None
        assert wizard.snapshot()["draft"] is None
        assert await storage.select("drafts", {}) == []
        assert (await wizard.edit_draft("Editing a draft that should not exist.")).code == ErrorCode.CONFLICT

    async def test_failure_stays_on_details_with_generic_message(self, wizard, service, caplog):
        service.fail = True
        await walk_reflect_to_details(wizard)
        queue = wizard.emitter.subscribe()

        with caplog.at_level(logging.ERROR, logger="podforge.wizard"):
            await wizard.advance()
            await wizard.join_generation()

        assert wizard.machine.current_step == Step.DETAILS_STEP
        assert wizard.machine.generating is None
        failed = [e for e in drain(queue) if e.type == EventType.GENERATION_FAILED]
        assert len(failed) == 1
        assert failed[0].content == GENERIC_FAILURE_MESSAGE
        assert "503" in caplog.text

        # Retry once the upstream recovers
        service.fail = False
        await wizard.advance()
        await wizard.join_generation()
        assert wizard.machine.current_step == Step.SCRIPT_EDITING

    async def test_intent_change_discards_draft(self, wizard, storage):
        await walk_reflect_to_editing(wizard)
        assert len(await storage.select("drafts", {})) == 1

        result = await wizard.select_intent("answer")

        assert result.data["current_step"] == "QUESTION_INPUT"
        assert result.data["path"][0] == "QUESTION_INPUT"
        assert await storage.select("drafts", {}) == []
        assert "legacy_lesson" not in wizard.machine.form_data
        assert wizard.machine.form_data["duration"] == "short"
        assert wizard.drafts.state == DraftState.EMPTY

    async def test_intent_change_while_generating_cancels(self, wizard, service):
        service.gate = asyncio.Event()
        await walk_reflect_to_details(wizard)
        await wizard.advance()
        await asyncio.sleep(0.01)

        await wizard.select_intent("answer")
        service.gate.set()
        await wizard.join_generation()

        assert wizard.machine.current_step == Step.QUESTION_INPUT
        assert "final_script" not in wizard.machine.form_data


class TestExplore:
    """Tests for the narrative-options round trip on the explore path."""

    async def _to_narratives(self, wizard):
        await wizard.select_intent("explore")
        await wizard.update_fields({
            "link_topic_a": "Jazz",
            "link_topic_b": "Mathematics",
            "link_catalyst": "Both reward recognizing patterns under pressure.",
        })
        await wizard.advance()
        await wizard.join_generation()

    async def test_narratives_are_generated_then_selected(self, wizard, service):
        await self._to_narratives(wizard)
        assert wizard.machine.current_step == Step.NARRATIVE_SELECTION
        assert service.narrative_calls == [("Jazz", "Mathematics", "Both reward recognizing patterns under pressure.")]
        options = wizard.machine.form_data["narrative_options"]
        assert len(options) == 3

        invented = await wizard.update_fields({"link_selected_narrative": {"title": "Made up", "thesis": "Nope."}})
        assert invented.code == ErrorCode.VALIDATION

        assert (await wizard.update_fields({"link_selected_narrative": options[1]})).success
        assert (await wizard.advance()).data["current_step"] == "TONE_SELECTION"

    async def test_narratives_only_publish_start_and_end(self, wizard):
        queue = wizard.emitter.subscribe()
        await self._to_narratives(wizard)
        types = event_types(drain(queue))
        assert EventType.GENERATION_STARTED in types
        assert EventType.GENERATION_COMPLETED in types
        assert EventType.PROGRESS not in types

    async def test_selected_narrative_feeds_the_draft(self, wizard, service):
        await self._to_narratives(wizard)
        options = wizard.machine.form_data["narrative_options"]
        await wizard.update_fields({"link_selected_narrative": options[0]})
        await wizard.advance()
        await wizard.update_fields({"selected_tone": "analytical"})
        await wizard.advance()
        await wizard.update_fields({"duration": "medium", "narrative_depth": "deep"})
        await wizard.advance()
        await wizard.join_generation()

        assert service.draft_calls[0].topic == options[0]["title"]
        assert wizard.machine.current_step == Step.SCRIPT_EDITING


class TestBranchesAndFreestyle:
    """Tests for sub-selection branches and the own-script shortcut."""

    async def test_learn_branch_is_taken_with_jump(self, wizard):
        await wizard.select_intent("learn")
        assert (await wizard.advance()).code == ErrorCode.VALIDATION

        result = await wizard.jump_to("SOLO_TALK_INPUT", "quick_lesson")
        assert result.success
        assert wizard.machine.form_data["style"] == "solo"

    async def test_disabled_branch_is_rejected(self, wizard):
        await wizard.select_intent("learn")
        result = await wizard.jump_to("DETAILS_STEP", "deep_course")
        assert result.code == ErrorCode.VALIDATION
        assert wizard.machine.current_step == Step.LEARN_SUB_SELECTION

    async def test_inspire_archetype_sets_tone(self, wizard):
        await wizard.select_intent("inspire")
        await wizard.jump_to("ARCHETYPE_GOAL", "sage")
        assert wizard.machine.form_data["selected_archetype"] == "archetype-sage"

    async def test_unknown_step_names_are_rejected(self, wizard):
        await wizard.select_intent("learn")
        assert (await wizard.jump_to("NOWHERE")).code == ErrorCode.VALIDATION
        assert (await wizard.advance("NOWHERE")).code == ErrorCode.VALIDATION
        assert (await wizard.select_intent("dance")).code == ErrorCode.VALIDATION

    async def test_own_script_is_submitted_without_generation(self, wizard, storage, service):
        await wizard.select_intent("freestyle")
        await wizard.update_fields({
            "freestyle_mode": "own_script",
            "final_title": "Written by hand",
            "final_script": "I already wrote every word of this episode myself.",
        })
        assert (await wizard.advance()).data["current_step"] == "SCRIPT_EDITING"
        await walk_editing_to_final(wizard)

        result = await wizard.submit()

        assert result.success
        assert service.draft_calls == []
        podcast = (await storage.select("podcasts", {}))[0]
        assert podcast["title"] == "Written by hand"
        assert podcast["promoted_from_draft_id"] is not None
        assert await storage.select("drafts", {}) == []

    async def test_back_never_leaves_the_first_path_step(self, wizard):
        await wizard.select_intent("reflect")
        await wizard.go_back()
        await wizard.go_back()
        assert wizard.machine.history == [Step.SELECTING_INTENT, Step.LEGACY_INPUT]


class TestSessionRecovery:
    """Tests for saving, offering, resuming and discarding sessions."""

    async def test_navigation_saves_session(self, wizard, session_backend, session_clock):
        queue = wizard.emitter.subscribe()
        await wizard.select_intent("reflect")

        stored = await SessionPersistence(session_backend, "user-1", clock=session_clock).load()
        assert stored.current_step == Step.LEGACY_INPUT
        saved = [e for e in drain(queue) if e.type == EventType.SESSION_SAVED]
        assert saved[0].data["revision"] == 1

    async def test_field_edits_are_saved_after_a_pause(self, wizard, session_backend, session_clock):
        await wizard.select_intent("reflect")
        await wizard.update_fields({"legacy_lesson": "Patience"})
        await wizard.update_fields({"legacy_lesson": "Patience beats talent."})
        await asyncio.sleep(0.05)

        stored = await SessionPersistence(session_backend, "user-1", clock=session_clock).load()
        assert stored.form_data["legacy_lesson"] == "Patience beats talent."

    async def test_mount_offers_recovery_without_applying_it(
        self, wizard, storage, session_backend, service, invalidator, session_clock, progress_clock,
    ):
        await walk_reflect_to_details(wizard)
        await wizard.saver.flush()

        reloaded = second_wizard(wizard, storage, session_backend, service, invalidator, session_clock, progress_clock)
        queue = reloaded.emitter.subscribe()
        offer = await reloaded.mount()

        assert offer.current_step == Step.DETAILS_STEP
        assert offer.intent == "reflect"
        assert reloaded.machine.current_step == Step.SELECTING_INTENT
        assert reloaded.snapshot()["recovery_pending"] is True
        assert event_types(drain(queue)) == [EventType.RECOVERY_AVAILABLE]

        result = await reloaded.resume()
        assert result.success
        assert reloaded.machine.current_step == Step.DETAILS_STEP
        assert reloaded.machine.form_data["legacy_lesson"] == "Patience beats talent over a long career."

    async def test_expired_session_is_not_offered(
        self, wizard, storage, session_backend, service, invalidator, session_clock, progress_clock,
    ):
        await wizard.select_intent("reflect")
        session_clock.advance(hours=25)

        reloaded = second_wizard(wizard, storage, session_backend, service, invalidator, session_clock, progress_clock)
        assert await reloaded.mount() is None
        assert (await reloaded.resume()).code == ErrorCode.CONFLICT

    async def test_pending_recovery_is_not_overwritten(
        self, wizard, storage, session_backend, service, invalidator, session_clock, progress_clock,
    ):
        await walk_reflect_to_details(wizard)
        await wizard.saver.flush()

        reloaded = second_wizard(wizard, storage, session_backend, service, invalidator, session_clock, progress_clock)
        await reloaded.mount()
        await reloaded.select_intent("answer")

        stored = await SessionPersistence(session_backend, "user-1", clock=session_clock).load()
        assert stored.current_step == Step.DETAILS_STEP

    async def test_discard_removes_session_and_draft_record(
        self, wizard, storage, session_backend, service, invalidator, session_clock, progress_clock,
    ):
        await walk_reflect_to_editing(wizard)
        assert len(await storage.select("drafts", {})) == 1

        reloaded = second_wizard(wizard, storage, session_backend, service, invalidator, session_clock, progress_clock)
        await reloaded.mount()
        result = await reloaded.discard()

        assert result.data["current_step"] == "SELECTING_INTENT"
        assert await storage.select("drafts", {}) == []
        assert await SessionPersistence(session_backend, "user-1", clock=session_clock).load() is None

    async def test_resumed_draft_can_be_submitted(
        self, wizard, storage, session_backend, service, invalidator, session_clock, progress_clock,
    ):
        await walk_reflect_to_editing(wizard)

        reloaded = second_wizard(wizard, storage, session_backend, service, invalidator, session_clock, progress_clock)
        await reloaded.mount()
        await reloaded.resume()
        assert reloaded.drafts.state == DraftState.READY

        await walk_editing_to_final(reloaded)
        result = await reloaded.submit()
        assert result.success
        assert await storage.select("drafts", {}) == []


class TestRegistry:
    """Tests for per-user wizards and the stale-view signal."""

    async def test_one_wizard_per_user(self, storage, session_backend, service):
        registry = WizardRegistry(storage, session_backend, service, ViewInvalidator(), save_delay=0.01)
        assert registry.get("user-1") is registry.get("user-1")
        assert registry.get("user-1") is not registry.get("user-2")
        assert registry.get("user-1").emitter is registry.emitter_for("user-1")
        await registry.close()

    async def test_invalidation_reaches_the_users_sockets(self, storage, session_backend, service):
        invalidator = ViewInvalidator()
        registry = WizardRegistry(storage, session_backend, service, invalidator)
        queue = registry.emitter_for("user-1").subscribe()
        other = registry.emitter_for("user-2").subscribe()

        await invalidator.invalidate("user-1")

        events = drain(queue)
        assert events[0].type == EventType.VIEWS_STALE
        assert events[0].data["paths"] == ["/u/user-1", "/dashboard", "/podcasts"]
        assert drain(other) == []
        await registry.close()

    async def test_failing_listener_is_logged(self, caplog):
        def broken(user_id, paths):
            raise RuntimeError("cdn purge failed")

        invalidator = ViewInvalidator([broken])
        with caplog.at_level(logging.ERROR, logger="podforge.invalidation"):
            paths = await invalidator.invalidate("user-1")
        assert paths == ["/u/user-1", "/dashboard", "/podcasts"]
        assert "listener failed" in caplog.text

    async def test_invalidator_keeps_nothing_between_calls(self, invalidator, invalidations):
        for user_id in ("user-1", "user-2", "user-1"):
            await invalidator.invalidate(user_id)

        assert [user_id for user_id, _ in invalidations] == ["user-1", "user-2", "user-1"]
        assert set(vars(invalidator)) == {"_listeners"}
