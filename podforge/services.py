"""
Service container.

Picks SQL-backed storage and session persistence when DATABASE_URL is set,
in-memory otherwise.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from podforge import database
from podforge.generation.agent import GeminiGenerationService
from podforge.generation.base import GenerationService
from podforge.invalidation import ViewInvalidator
from podforge.persistence.backends import KeyValueBackend, MemoryKeyValueBackend, SQLKeyValueBackend
from podforge.promotion import CollectionCoordinator
from podforge.storage.base import StorageAdapter
from podforge.storage.memory import MemoryStorageAdapter
from podforge.storage.sql import SQLStorageAdapter

logger = logging.getLogger(__name__)


@dataclass
class Services:
    storage: StorageAdapter
    session_backend: KeyValueBackend
    generation: GenerationService
    invalidator: ViewInvalidator
    collections: CollectionCoordinator
    storage_mode: str = "memory"


def build_services(
    generation: Optional[GenerationService] = None,
    session_maker=None,
) -> Services:
    session_maker = session_maker if session_maker is not None else database.async_session_maker
    if session_maker is not None:
        storage: StorageAdapter = SQLStorageAdapter(session_maker)
        session_backend: KeyValueBackend = SQLKeyValueBackend(session_maker)
        mode = "sql"
    else:
        logger.warning("DATABASE_URL not set - using in-memory storage (data is lost on restart)")
        storage = MemoryStorageAdapter()
        session_backend = MemoryKeyValueBackend()
        mode = "memory"

    invalidator = ViewInvalidator()
    return Services(
        storage=storage,
        session_backend=session_backend,
        generation=generation or GeminiGenerationService(),
        invalidator=invalidator,
        collections=CollectionCoordinator(storage, invalidator),
        storage_mode=mode,
    )
