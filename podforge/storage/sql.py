"""
SQL storage adapter backed by SQLModel on an async SQLAlchemy engine.

Driver errors are wrapped in `StorageError`; callers never see SQLAlchemy
exceptions.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import delete as sa_delete
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select

from podforge.errors import StorageError
from podforge.models import DraftRecord, Podcast
from podforge.schemas import PromotionResult
from podforge.storage.base import model_for

logger = logging.getLogger(__name__)


def _where(stmt, model, filters: Dict[str, Any]):
    for key, value in filters.items():
        stmt = stmt.where(getattr(model, key) == value)
    return stmt


class SQLStorageAdapter:
    def __init__(self, session_maker):
        self._session_maker = session_maker

    async def insert(self, record_type: str, values: Dict[str, Any]) -> Dict[str, Any]:
        model = model_for(record_type)
        try:
            async with self._session_maker() as db:
                row = model(**values)
                db.add(row)
                await db.commit()
                await db.refresh(row)
                return row.model_dump()
        except SQLAlchemyError as e:
            raise StorageError(f"insert into {record_type} failed: {e}") from e

    async def update(self, record_type: str, filters: Dict[str, Any], values: Dict[str, Any]) -> List[Dict[str, Any]]:
        model = model_for(record_type)
        try:
            async with self._session_maker() as db:
                result = await db.execute(_where(select(model), model, filters))
                rows = result.scalars().all()
                for row in rows:
                    for key, value in values.items():
                        setattr(row, key, value)
                    db.add(row)
                await db.commit()
                return [row.model_dump() for row in rows]
        except SQLAlchemyError as e:
            raise StorageError(f"update of {record_type} failed: {e}") from e

    async def delete(self, record_type: str, filters: Dict[str, Any]) -> int:
        model = model_for(record_type)
        try:
            async with self._session_maker() as db:
                result = await db.execute(_where(sa_delete(model), model, filters))
                await db.commit()
                return result.rowcount or 0
        except SQLAlchemyError as e:
            raise StorageError(f"delete from {record_type} failed: {e}") from e

    async def select(
        self,
        record_type: str,
        filters: Dict[str, Any],
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> List[Dict[str, Any]]:
        model = model_for(record_type)
        stmt = _where(select(model), model, filters)
        if order_by:
            column = getattr(model, order_by)
            stmt = stmt.order_by(column.desc() if descending else column.asc())
        try:
            async with self._session_maker() as db:
                result = await db.execute(stmt)
                return [row.model_dump() for row in result.scalars().all()]
        except SQLAlchemyError as e:
            raise StorageError(f"select from {record_type} failed: {e}") from e

    async def promote_draft(
        self,
        draft_id: str,
        user_id: str,
        title: str,
        script: str,
        sources: List[Dict[str, Any]],
    ) -> PromotionResult:
        """Create the production record and remove the draft in one transaction."""
        try:
            async with self._session_maker() as db:
                async with db.begin():
                    result = await db.execute(
                        select(DraftRecord)
                        .where(DraftRecord.id == draft_id)
                        .where(DraftRecord.user_id == user_id)
                        .where(DraftRecord.status == "draft")
                        .with_for_update()
                    )
                    draft = result.scalar_one_or_none()
                    if draft is None:
                        return PromotionResult(success=False, message="Draft not found.")

                    podcast = Podcast(
                        user_id=user_id,
                        title=title,
                        script_text=script,
                        creation_data=dict(draft.creation_data or {}),
                        sources=list(sources),
                        promoted_from_draft_id=draft_id,
                    )
                    db.add(podcast)
                    await db.delete(draft)
                return PromotionResult(success=True, message="Production started.", new_record_id=podcast.id)
        except SQLAlchemyError as e:
            raise StorageError(f"promote_draft({draft_id}) failed: {e}") from e
