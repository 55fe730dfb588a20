"""
Tests for the SQL storage adapter and session backend on a throwaway
SQLite database.
"""

import pytest

from podforge.database import build_engine, build_session_maker, create_tables
from podforge.errors import StorageError
from podforge.flow.steps import Step
from podforge.persistence.backends import SQLKeyValueBackend
from podforge.persistence.session_store import SessionPersistence, WizardSession
from podforge.storage.sql import SQLStorageAdapter
from tests.conftest import seed_podcast


@pytest.fixture
async def session_maker(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'podforge.db'}")
    await create_tables(engine)
    yield build_session_maker(engine)
    await engine.dispose()


@pytest.fixture
def sql_storage(session_maker):
    return SQLStorageAdapter(session_maker)


class TestSQLStorageAdapter:
    """Tests for CRUD and the transactional promotion."""

    async def test_insert_select_update_delete(self, sql_storage):
        row = await sql_storage.insert("drafts", {
            "user_id": "user-1",
            "title": "First",
            "script_text": "A first stored script.",
            "sources": [{"title": "A", "url": "https://example.org/a"}],
        })
        assert row["id"].startswith("DRF_")

        rows = await sql_storage.select("drafts", {"user_id": "user-1"})
        assert rows[0]["sources"][0]["url"] == "https://example.org/a"

        updated = await sql_storage.update("drafts", {"id": row["id"]}, {"title": "Renamed"})
        assert updated[0]["title"] == "Renamed"

        assert await sql_storage.delete("drafts", {"id": row["id"], "user_id": "user-2"}) == 0
        assert await sql_storage.delete("drafts", {"id": row["id"]}) == 1
        assert await sql_storage.select("drafts", {}) == []

    async def test_ordering(self, sql_storage):
        collection = await sql_storage.insert("collections", {"owner_id": "user-1", "title": "Ordered"})
        first = await seed_podcast(sql_storage)
        second = await seed_podcast(sql_storage)
        for position, podcast_id in ((1, second), (0, first)):
            await sql_storage.insert("collection_items", {
                "collection_id": collection["id"], "podcast_id": podcast_id, "position": position,
            })

        items = await sql_storage.select("collection_items", {"collection_id": collection["id"]}, order_by="position")
        assert [item["podcast_id"] for item in items] == [first, second]

    async def test_unique_violation_becomes_storage_error(self, sql_storage):
        collection = await sql_storage.insert("collections", {"owner_id": "user-1", "title": "Dupes"})
        podcast_id = await seed_podcast(sql_storage)
        values = {"collection_id": collection["id"], "podcast_id": podcast_id}
        await sql_storage.insert("collection_items", values)

        with pytest.raises(StorageError):
            await sql_storage.insert("collection_items", values)

    async def test_unknown_record_type(self, sql_storage):
        with pytest.raises(ValueError):
            await sql_storage.select("profiles", {})

    async def test_promote_draft(self, sql_storage):
        draft = await sql_storage.insert("drafts", {
            "user_id": "user-1",
            "title": "Draft",
            "script_text": "Generated script text.",
            "creation_data": {"intent": "answer"},
        })

        refused = await sql_storage.promote_draft(draft["id"], "user-2", "Title", "Script", [])
        assert not refused.success

        result = await sql_storage.promote_draft(draft["id"], "user-1", "Final title", "Final script", [])
        assert result.success
        podcast = (await sql_storage.select("podcasts", {"id": result.new_record_id}))[0]
        assert podcast["creation_data"] == {"intent": "answer"}
        assert podcast["promoted_from_draft_id"] == draft["id"]
        assert await sql_storage.select("drafts", {}) == []


class TestSQLKeyValueBackend:
    """Tests for the wizard_sessions key-value table."""

    async def test_set_get_overwrite_delete(self, session_maker):
        backend = SQLKeyValueBackend(session_maker)
        assert await backend.get("wizard-session:user-1") is None

        await backend.set("wizard-session:user-1", "first")
        await backend.set("wizard-session:user-1", "second")
        assert await backend.get("wizard-session:user-1") == "second"

        await backend.delete("wizard-session:user-1")
        await backend.delete("wizard-session:user-1")
        assert await backend.get("wizard-session:user-1") is None

    async def test_session_round_trip(self, session_maker, session_clock):
        persistence = SessionPersistence(SQLKeyValueBackend(session_maker), "user-1", clock=session_clock)
        await persistence.save(WizardSession(
            current_step=Step.QUESTION_INPUT,
            step_history=[Step.SELECTING_INTENT, Step.QUESTION_INPUT],
            form_data={"intent": "answer", "question_to_answer": "Why is the sky blue?"},
        ))

        loaded = await persistence.load()
        assert loaded.current_step == Step.QUESTION_INPUT
        assert loaded.form_data["question_to_answer"] == "Why is the sky blue?"
