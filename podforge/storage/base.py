"""
Storage adapter contract.

Generic record operations keyed by record type and an equality filter,
plus the atomic draft promotion procedure.
"""

from typing import Any, Dict, List, Optional, Protocol

from podforge.models import Collection, CollectionItem, DraftRecord, Podcast
from podforge.schemas import PromotionResult

RECORD_MODELS = {
    "drafts": DraftRecord,
    "podcasts": Podcast,
    "collections": Collection,
    "collection_items": CollectionItem,
}


def model_for(record_type: str):
    try:
        return RECORD_MODELS[record_type]
    except KeyError:
        raise ValueError(f"Unknown record type: {record_type}") from None


class StorageAdapter(Protocol):
    """Every method raises `StorageError` when the store cannot be reached."""

    async def insert(self, record_type: str, values: Dict[str, Any]) -> Dict[str, Any]:
        ...

    async def update(self, record_type: str, filters: Dict[str, Any], values: Dict[str, Any]) -> List[Dict[str, Any]]:
        ...

    async def delete(self, record_type: str, filters: Dict[str, Any]) -> int:
        ...

    async def select(
        self,
        record_type: str,
        filters: Dict[str, Any],
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> List[Dict[str, Any]]:
        ...

    async def promote_draft(
        self,
        draft_id: str,
        user_id: str,
        title: str,
        script: str,
        sources: List[Dict[str, Any]],
    ) -> PromotionResult:
        ...
