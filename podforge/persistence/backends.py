"""
Key-value backends for the wizard session blob.

The value is an opaque string; shape checks belong to the session store.
"""

from datetime import datetime
from typing import Dict, Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError

from podforge.errors import StorageError
from podforge.models import WizardSessionRecord


class KeyValueBackend(Protocol):
    async def get(self, key: str) -> Optional[str]:
        ...

    async def set(self, key: str, value: str) -> None:
        ...

    async def delete(self, key: str) -> None:
        ...


class MemoryKeyValueBackend:
    """Process-local backend. Everything is lost on restart."""

    def __init__(self):
        self._values: Dict[str, str] = {}

    async def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    async def set(self, key: str, value: str) -> None:
        self._values[key] = value

    async def delete(self, key: str) -> None:
        self._values.pop(key, None)


class SQLKeyValueBackend:
    """Stores each key as one row of the `wizard_sessions` table."""

    def __init__(self, session_maker):
        self._session_maker = session_maker

    async def get(self, key: str) -> Optional[str]:
        try:
            async with self._session_maker() as db:
                row = await db.get(WizardSessionRecord, key)
                return row.payload if row else None
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to read {key}: {e}") from e

    async def set(self, key: str, value: str) -> None:
        try:
            async with self._session_maker() as db:
                row = await db.get(WizardSessionRecord, key)
                if row is None:
                    row = WizardSessionRecord(key=key, payload=value)
                else:
                    row.payload = value
                    row.updated_at = datetime.utcnow()
                db.add(row)
                await db.commit()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to write {key}: {e}") from e

    async def delete(self, key: str) -> None:
        try:
            async with self._session_maker() as db:
                row = await db.get(WizardSessionRecord, key)
                if row is not None:
                    await db.delete(row)
                    await db.commit()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to delete {key}: {e}") from e
