"""Wizard session persistence: backends, the session store and the debounced saver."""

from podforge.persistence.backends import KeyValueBackend, MemoryKeyValueBackend, SQLKeyValueBackend
from podforge.persistence.debounce import DebouncedSaver
from podforge.persistence.session_store import SessionPersistence, WizardSession

__all__ = [
    "KeyValueBackend",
    "MemoryKeyValueBackend",
    "SQLKeyValueBackend",
    "DebouncedSaver",
    "SessionPersistence",
    "WizardSession",
]
