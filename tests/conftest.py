"""
Shared fixtures: in-memory storage and session backends, a controllable
generation service, and manual clocks.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Set

import pytest

from podforge.errors import GenerationError, StorageError
from podforge.invalidation import ViewInvalidator
from podforge.persistence.backends import MemoryKeyValueBackend
from podforge.promotion import CollectionCoordinator
from podforge.schemas import DraftInputs, GeneratedDraft, NarrativeOption, ResearchSource, SourceOrigin
from podforge.services import Services
from podforge.storage.memory import MemoryStorageAdapter
from podforge.wizard import CreationWizard


# =============================================================================
# Fakes
# =============================================================================

class ManualClock:
    """Monotonic clock in seconds that only moves when told to."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ManualDateClock:
    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2026, 1, 10, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeGenerationService:
    """
    Records every call. Set `gate` to hold calls until the test releases
    them, `fail` to make them raise.
    """

    def __init__(self):
        self.draft_calls: List[DraftInputs] = []
        self.narrative_calls: List[tuple] = []
        self.gate: Optional[asyncio.Event] = None
        self.fail = False
        self.draft = GeneratedDraft(
            title="Why We Sleep, Briefly",
            script="Every night your brain runs a cleaning cycle you never notice. " * 3,
            sources=[
                ResearchSource(
                    title="Sleep and memory",
                    url="https://example.org/sleep",
                    snippet="Sleep consolidates memory.",
                    origin=SourceOrigin.WEB,
                ),
            ],
        )
        self.narratives = [
            NarrativeOption(title="Rhythm as memory", thesis="Both rely on repetition."),
            NarrativeOption(title="Hidden maths", thesis="Structure underlies both."),
            NarrativeOption(title="Shared ancestry", thesis="They grew up together."),
        ]

    async def generate_draft(self, inputs: DraftInputs) -> GeneratedDraft:
        self.draft_calls.append(inputs)
        if self.gate is not None:
            await self.gate.wait()
        if self.fail:
            raise GenerationError("upstream 503: model overloaded")
        return self.draft

    async def generate_narrative_options(self, topic_a: str, topic_b: str, catalyst: str) -> List[NarrativeOption]:
        self.narrative_calls.append((topic_a, topic_b, catalyst))
        if self.gate is not None:
            await self.gate.wait()
        if self.fail:
            raise GenerationError("upstream 503: model overloaded")
        return list(self.narratives)


class FlakyStorage(MemoryStorageAdapter):
    """Memory storage that raises `StorageError` or holds inserts on demand."""

    def __init__(self):
        super().__init__()
        self.fail_insert: Set[str] = set()
        self.fail_delete: Set[str] = set()
        self.fail_promote = False
        self.inserts: List[str] = []
        self.insert_gates: Dict[str, asyncio.Event] = {}

    async def insert(self, record_type, values):
        self.inserts.append(record_type)
        if record_type in self.insert_gates:
            await self.insert_gates[record_type].wait()
        if record_type in self.fail_insert:
            raise StorageError(f'relation "{record_type}" violates row-level security policy')
        return await super().insert(record_type, values)

    async def delete(self, record_type, filters):
        if record_type in self.fail_delete:
            raise StorageError("connection reset by peer")
        return await super().delete(record_type, filters)

    async def promote_draft(self, draft_id, user_id, title, script, sources):
        if self.fail_promote:
            raise StorageError("function promote_draft_to_production() timed out")
        return await super().promote_draft(draft_id, user_id, title, script, sources)


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def storage():
    return FlakyStorage()


@pytest.fixture
def session_backend():
    return MemoryKeyValueBackend()


@pytest.fixture
def service():
    return FakeGenerationService()


@pytest.fixture
def invalidations():
    return []


@pytest.fixture
def invalidator(invalidations):
    return ViewInvalidator([lambda user_id, paths: invalidations.append((user_id, paths))])


@pytest.fixture
def progress_clock():
    return ManualClock()


@pytest.fixture
def session_clock():
    return ManualDateClock()


@pytest.fixture
def wizard(storage, session_backend, service, invalidator, progress_clock, session_clock):
    created = CreationWizard(
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
    yield created


@pytest.fixture
def services(storage, session_backend, service, invalidator):
    return Services(
        storage=storage,
        session_backend=session_backend,
        generation=service,
        invalidator=invalidator,
        collections=CollectionCoordinator(storage, invalidator),
        storage_mode="memory",
    )


async def seed_podcast(storage, user_id: str = "user-1", title: str = "Seeded episode") -> str:
    row = await storage.insert("podcasts", {
        "user_id": user_id,
        "title": title,
        "script_text": "A seeded script used by collection tests.",
    })
    return row["id"]


def drain(queue: asyncio.Queue) -> list:
    events = []
    while not queue.empty():
        events.append(queue.get_nowait())
    return events
