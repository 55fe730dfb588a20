"""
SQLModel Database Models

Schema for the creation pipeline: persisted wizard sessions, private
drafts, the production catalog and user collections.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import JSON, Column, Text, UniqueConstraint
from sqlmodel import SQLModel, Field

from podforge.utils.id_generator import (
    generate_draft_id,
    generate_podcast_id,
    generate_collection_id,
    generate_collection_item_id,
)


class WizardSessionRecord(SQLModel, table=True):
    """
    Opaque key-value row holding one user's in-progress wizard snapshot.

    The payload is a JSON document; its shape is validated by the session
    store, not by the database.
    """
    __tablename__ = "wizard_sessions"

    key: str = Field(primary_key=True, max_length=255)
    payload: str = Field(sa_column=Column(Text, nullable=False))
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class DraftRecord(SQLModel, table=True):
    """
    A generated script that has not been sent to production yet.

    Private to its owner. Deleted when promoted or discarded.
    """
    __tablename__ = "drafts"

    id: str = Field(default_factory=generate_draft_id, primary_key=True)
    user_id: str = Field(index=True)
    title: str = Field(max_length=255)
    script_text: str = Field(sa_column=Column(Text, nullable=False))
    creation_data: dict = Field(default_factory=dict, sa_column=Column(JSON))
    sources: List[dict] = Field(default_factory=list, sa_column=Column(JSON))
    status: str = Field(default="draft")
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class Podcast(SQLModel, table=True):
    """
    Production catalog entry created by promoting a draft.

    `sources` are copied verbatim from the draft for provenance.
    """
    __tablename__ = "podcasts"

    id: str = Field(default_factory=generate_podcast_id, primary_key=True)
    user_id: str = Field(index=True)
    title: str = Field(max_length=255)
    script_text: str = Field(sa_column=Column(Text, nullable=False))
    creation_data: dict = Field(default_factory=dict, sa_column=Column(JSON))
    sources: List[dict] = Field(default_factory=list, sa_column=Column(JSON))
    status: str = Field(default="pending_audio")  # pending_audio, processing, published, failed
    promoted_from_draft_id: Optional[str] = Field(default=None, index=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)


class Collection(SQLModel, table=True):
    """Curated, ordered list of podcasts owned by one user."""
    __tablename__ = "collections"

    id: str = Field(default_factory=generate_collection_id, primary_key=True)
    owner_id: str = Field(index=True)
    title: str = Field(max_length=50)
    description: Optional[str] = Field(default=None, max_length=200)
    is_public: bool = Field(default=True)
    cover_image_url: Optional[str] = Field(default=None)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class CollectionItem(SQLModel, table=True):
    """Link row attaching a podcast to a collection."""
    __tablename__ = "collection_items"
    __table_args__ = (UniqueConstraint("collection_id", "podcast_id"),)

    id: str = Field(default_factory=generate_collection_item_id, primary_key=True)
    collection_id: str = Field(foreign_key="collections.id", index=True)
    podcast_id: str = Field(foreign_key="podcasts.id", index=True)
    position: int = Field(default=0)
    created_at: datetime = Field(default_factory=datetime.utcnow)
