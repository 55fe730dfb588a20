"""
Session Persistence

Saves and loads the serializable snapshot of one user's in-progress wizard.
A stored blob is only ever handed back if it parses, matches the current
schema version, and is younger than the freshness cutoff. Anything else is
deleted and reported as absent.
"""

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from pydantic import AwareDatetime, BaseModel, Field, ValidationError, model_validator

from podforge.flow.steps import Step
from podforge.persistence.backends import KeyValueBackend
from podforge.settings import settings

logger = logging.getLogger(__name__)

KEY_PREFIX = "wizard-session"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WizardSession(BaseModel):
    """Snapshot of the wizard: where the user is, how they got there, what they typed."""
    version: int = 0
    revision: int = 0
    current_step: Step
    step_history: List[Step]
    form_data: Dict[str, Any] = Field(default_factory=dict)
    saved_at: Optional[AwareDatetime] = None

    @model_validator(mode="after")
    def _check_history(self):
        if not self.step_history:
            raise ValueError("step_history cannot be empty")
        if self.step_history[0] != Step.SELECTING_INTENT:
            raise ValueError("step_history must start at intent selection")
        if self.step_history[-1] != self.current_step:
            raise ValueError("current_step must be the last entry of step_history")
        return self


class SessionPersistence:
    """
    Per-user save/load/discard of `WizardSession` blobs.

    Two writers (e.g. two tabs) race on last-write-wins. Each blob carries a
    revision; saving on top of a newer revision than the one this writer last
    saw still goes through but logs a warning.
    """

    def __init__(
        self,
        backend: KeyValueBackend,
        user_id: str,
        max_age: Optional[timedelta] = None,
        schema_version: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._backend = backend
        self._user_id = user_id
        self._max_age = max_age if max_age is not None else timedelta(hours=settings.SESSION_MAX_AGE_HOURS)
        self._schema_version = schema_version if schema_version is not None else settings.SESSION_SCHEMA_VERSION
        self._clock = clock
        self._revision = 0

    @property
    def key(self) -> str:
        return f"{KEY_PREFIX}:{self._user_id}"

    @property
    def revision(self) -> int:
        return self._revision

    async def save(self, session: WizardSession) -> WizardSession:
        stored = await self._stored_revision()
        if stored > self._revision:
            logger.warning(
                "Overwriting wizard session %s at revision %d from base revision %d (another writer saved in between)",
                self.key, stored, self._revision,
            )
        stamped = session.model_copy(update={
            "version": self._schema_version,
            "revision": max(stored, self._revision) + 1,
            "saved_at": self._clock(),
        })
        await self._backend.set(self.key, stamped.model_dump_json())
        self._revision = stamped.revision
        return stamped

    async def load(self) -> Optional[WizardSession]:
        raw = await self._backend.get(self.key)
        if raw is None:
            return None

        try:
            session = WizardSession.model_validate_json(raw)
        except ValidationError as e:
            logger.info("Dropping unreadable wizard session %s: %s", self.key, e.error_count())
            await self._backend.delete(self.key)
            return None

        if session.version != self._schema_version:
            logger.info("Dropping wizard session %s with schema version %d", self.key, session.version)
            await self._backend.delete(self.key)
            return None

        if session.saved_at is None or self._clock() - session.saved_at > self._max_age:
            logger.info("Dropping stale wizard session %s saved at %s", self.key, session.saved_at)
            await self._backend.delete(self.key)
            return None

        self._revision = session.revision
        return session

    async def discard(self) -> None:
        await self._backend.delete(self.key)
        self._revision = 0

    async def _stored_revision(self) -> int:
        raw = await self._backend.get(self.key)
        if raw is None:
            return 0
        try:
            return int(json.loads(raw).get("revision", 0))
        except (ValueError, TypeError, AttributeError):
            return 0
