"""
In-memory storage adapter.

Used when DATABASE_URL is not configured (state is lost on restart) and by
the test-suite. Mirrors the SQL schema's foreign keys and unique constraint
so partial-write failures behave the same way.
"""

import copy
from datetime import datetime
from typing import Any, Dict, List, Optional

from podforge.errors import StorageError
from podforge.models import Podcast
from podforge.schemas import PromotionResult
from podforge.storage.base import RECORD_MODELS, model_for

FOREIGN_KEYS = {
    "collection_items": {"collection_id": "collections", "podcast_id": "podcasts"},
}
UNIQUE_TOGETHER = {
    "collection_items": ("collection_id", "podcast_id"),
}


def _matches(row: Dict[str, Any], filters: Dict[str, Any]) -> bool:
    return all(row.get(key) == value for key, value in filters.items())


class MemoryStorageAdapter:
    def __init__(self):
        self._tables: Dict[str, Dict[str, Dict[str, Any]]] = {name: {} for name in RECORD_MODELS}

    async def insert(self, record_type: str, values: Dict[str, Any]) -> Dict[str, Any]:
        row = model_for(record_type)(**values).model_dump()
        self._check_constraints(record_type, row)
        self._tables[record_type][row["id"]] = row
        return copy.deepcopy(row)

    async def update(self, record_type: str, filters: Dict[str, Any], values: Dict[str, Any]) -> List[Dict[str, Any]]:
        model_for(record_type)
        updated = []
        for row in self._tables[record_type].values():
            if _matches(row, filters):
                row.update(copy.deepcopy(values))
                if "updated_at" in row:
                    row["updated_at"] = datetime.utcnow()
                updated.append(copy.deepcopy(row))
        return updated

    async def delete(self, record_type: str, filters: Dict[str, Any]) -> int:
        model_for(record_type)
        table = self._tables[record_type]
        doomed = [key for key, row in table.items() if _matches(row, filters)]
        for key in doomed:
            del table[key]
        return len(doomed)

    async def select(
        self,
        record_type: str,
        filters: Dict[str, Any],
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> List[Dict[str, Any]]:
        model_for(record_type)
        rows = [copy.deepcopy(row) for row in self._tables[record_type].values() if _matches(row, filters)]
        if order_by:
            rows.sort(key=lambda row: row.get(order_by), reverse=descending)
        return rows

    async def promote_draft(
        self,
        draft_id: str,
        user_id: str,
        title: str,
        script: str,
        sources: List[Dict[str, Any]],
    ) -> PromotionResult:
        drafts = self._tables["drafts"]
        draft = drafts.get(draft_id)
        if draft is None or draft["user_id"] != user_id or draft["status"] != "draft":
            return PromotionResult(success=False, message="Draft not found.")

        # No await between these two writes, so nothing can observe half a move
        podcast = Podcast(
            user_id=user_id,
            title=title,
            script_text=script,
            creation_data=copy.deepcopy(draft.get("creation_data") or {}),
            sources=copy.deepcopy(sources),
            promoted_from_draft_id=draft_id,
        ).model_dump()
        self._tables["podcasts"][podcast["id"]] = podcast
        del drafts[draft_id]
        return PromotionResult(success=True, message="Production started.", new_record_id=podcast["id"])

    def _check_constraints(self, record_type: str, row: Dict[str, Any]) -> None:
        if row["id"] in self._tables[record_type]:
            raise StorageError(f"duplicate key value violates primary key on {record_type}")
        for column, target in FOREIGN_KEYS.get(record_type, {}).items():
            if row.get(column) not in self._tables[target]:
                raise StorageError(f"insert on {record_type} violates foreign key {column} -> {target}")
        unique = UNIQUE_TOGETHER.get(record_type)
        if unique:
            key = tuple(row.get(column) for column in unique)
            for existing in self._tables[record_type].values():
                if tuple(existing.get(column) for column in unique) == key:
                    raise StorageError(f"duplicate key value violates unique constraint on {record_type}")
