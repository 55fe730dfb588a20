"""
Event Emitter for real-time streaming of wizard events to WebSocket.
Uses asyncio Queue to decouple wizard operations from WebSocket streaming.

One emitter per user; every connected socket of that user subscribes to it.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class EventType(Enum):
    STEP_CHANGED = "step_changed"
    PROGRESS = "progress"
    PHASE_CHANGED = "phase_changed"
    GENERATION_STARTED = "generation_started"
    GENERATION_COMPLETED = "generation_completed"
    GENERATION_FAILED = "generation_failed"
    GENERATION_CANCELLED = "generation_cancelled"
    DRAFT_UPDATED = "draft_updated"
    SESSION_SAVED = "session_saved"
    RECOVERY_AVAILABLE = "recovery_available"
    VIEWS_STALE = "views_stale"
    STATUS = "status"


@dataclass
class WizardEvent:
    """Represents a single event from a user's wizard."""
    type: EventType
    content: str = ""
    step: Optional[str] = None
    progress: Optional[float] = None
    phase: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: Dict[str, Any] = {
            "type": self.type.value,
            "content": self.content,
        }
        if self.step:
            result["step"] = self.step
        if self.progress is not None:
            result["progress"] = round(self.progress, 2)
        if self.phase:
            result["phase"] = self.phase
        if self.data:
            result["data"] = self.data
        return result


class EventEmitter:
    """
    Fan-out emitter using one asyncio Queue per subscriber.
    Wizard code emits synchronously, WebSocket handlers consume asynchronously.
    """

    def __init__(self):
        self._queues: List[asyncio.Queue] = []
        self._closed: bool = False  # Flag to stop accepting events

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue()
        self._queues.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        if queue in self._queues:
            self._queues.remove(queue)

    def close(self):
        """Mark emitter as closed. Future emit() calls will be no-ops."""
        self._closed = True
        self._queues = []

    def emit(self, event: WizardEvent):
        """Emit event to every subscriber unless the emitter is closed."""
        if self._closed:
            return
        for queue in list(self._queues):
            queue.put_nowait(event)

    def emit_step_changed(self, step: str, history: List[str]):
        self.emit(WizardEvent(type=EventType.STEP_CHANGED, step=step, data={"history": history}))

    def emit_progress(self, progress: float, phase: str):
        self.emit(WizardEvent(type=EventType.PROGRESS, progress=progress, phase=phase))

    def emit_phase_changed(self, index: int, label: str, icon: str):
        self.emit(WizardEvent(
            type=EventType.PHASE_CHANGED,
            phase=label,
            data={"index": index, "icon": icon},
        ))

    def emit_generation_started(self, kind: str, token: int):
        self.emit(WizardEvent(type=EventType.GENERATION_STARTED, content=kind, data={"token": token}))

    def emit_generation_completed(self, kind: str, step: str):
        self.emit(WizardEvent(type=EventType.GENERATION_COMPLETED, content=kind, step=step))

    def emit_generation_failed(self, kind: str, message: str):
        self.emit(WizardEvent(type=EventType.GENERATION_FAILED, content=message, data={"kind": kind}))

    def emit_generation_cancelled(self, kind: str):
        self.emit(WizardEvent(type=EventType.GENERATION_CANCELLED, content=kind))

    def emit_draft_updated(self, draft: Dict[str, Any]):
        self.emit(WizardEvent(type=EventType.DRAFT_UPDATED, data=draft))

    def emit_session_saved(self, revision: int):
        self.emit(WizardEvent(type=EventType.SESSION_SAVED, data={"revision": revision}))

    def emit_recovery_available(self, step: str, saved_at: str):
        self.emit(WizardEvent(type=EventType.RECOVERY_AVAILABLE, step=step, data={"saved_at": saved_at}))

    def emit_views_stale(self, paths: List[str]):
        self.emit(WizardEvent(type=EventType.VIEWS_STALE, data={"paths": paths}))

    def emit_status(self, content: str):
        """Convenience method for status events."""
        self.emit(WizardEvent(type=EventType.STATUS, content=content))
