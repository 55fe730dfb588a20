"""
Pydantic schemas shared across the creation pipeline.

Covers research sources, generation inputs/outputs, the normalized
{success, message, data} result returned by every boundary call,
and the collection payload.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from podforge.flow.steps import Intent


# =============================================================================
# RESEARCH & GENERATION
# =============================================================================

class SourceOrigin(str, Enum):
    VAULT = "vault"  # internally curated knowledge
    WEB = "web"      # fetched during generation


class ResearchSource(BaseModel):
    """One piece of evidence produced alongside a draft. Never edited."""
    model_config = ConfigDict(frozen=True)

    title: str
    url: str
    snippet: Optional[str] = None
    content: Optional[str] = None
    origin: SourceOrigin = SourceOrigin.WEB


class NarrativeOption(BaseModel):
    """A candidate storyline connecting two topics (explore intent)."""
    title: str = Field(min_length=1)
    thesis: str = Field(min_length=1)


class GeneratedDraft(BaseModel):
    """What the generation service returns for a draft request."""
    title: str
    script: str
    sources: List[ResearchSource] = Field(default_factory=list)


class DraftInputs(BaseModel):
    """Normalized generation request built from the wizard's form data."""
    intent: Intent
    topic: str
    motivation: str = ""
    tone: str = ""
    duration: str = ""
    depth: str = ""
    raw_inputs: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_form(cls, form_data: Dict[str, Any]) -> "DraftInputs":
        intent = Intent(form_data["intent"])
        topic, motivation = _topic_and_motivation(intent, form_data)
        return cls(
            intent=intent,
            topic=topic,
            motivation=motivation,
            # The archetype doubles as the tone for the inspire path
            tone=form_data.get("selected_tone") or form_data.get("selected_archetype") or "",
            duration=form_data.get("duration") or "",
            depth=form_data.get("narrative_depth") or "",
            raw_inputs=dict(form_data),
        )


def _topic_and_motivation(intent: Intent, form: Dict[str, Any]) -> tuple:
    if intent == Intent.INSPIRE:
        return form.get("archetype_topic", ""), form.get("archetype_goal", "")
    if intent == Intent.EXPLORE:
        narrative = form.get("link_selected_narrative") or {}
        topic = narrative.get("title") or f"{form.get('link_topic_a', '')} & {form.get('link_topic_b', '')}"
        return topic, narrative.get("thesis") or form.get("link_catalyst", "")
    if intent == Intent.REFLECT:
        return form.get("legacy_lesson", ""), ""
    if intent == Intent.ANSWER:
        return form.get("question_to_answer", ""), ""
    return form.get("solo_topic", ""), form.get("solo_motivation", "")


# =============================================================================
# BOUNDARY RESULTS
# =============================================================================

class ErrorCode(str, Enum):
    VALIDATION = "validation"
    AUTH = "auth"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    EXTERNAL = "external"


GENERIC_FAILURE_MESSAGE = "Something went wrong. Please try again."
AUTH_REQUIRED_MESSAGE = "Authentication required."


class ActionResult(BaseModel):
    """
    The normalized shape returned by every boundary operation.
    Raw backend error text never appears in `message`.
    """
    success: bool
    message: str = ""
    data: Optional[Any] = None
    errors: Optional[Dict[str, str]] = None
    code: Optional[ErrorCode] = None

    @classmethod
    def ok(cls, message: str = "", data: Any = None) -> "ActionResult":
        return cls(success=True, message=message, data=data)

    @classmethod
    def invalid(cls, errors: Dict[str, str], message: str = "Some information is missing.") -> "ActionResult":
        return cls(success=False, message=message, errors=errors, code=ErrorCode.VALIDATION)

    @classmethod
    def auth_required(cls) -> "ActionResult":
        return cls(success=False, message=AUTH_REQUIRED_MESSAGE, code=ErrorCode.AUTH)

    @classmethod
    def conflict(cls, message: str) -> "ActionResult":
        return cls(success=False, message=message, code=ErrorCode.CONFLICT)

    @classmethod
    def not_found(cls, message: str) -> "ActionResult":
        return cls(success=False, message=message, code=ErrorCode.NOT_FOUND)

    @classmethod
    def failed(cls, message: str = GENERIC_FAILURE_MESSAGE) -> "ActionResult":
        return cls(success=False, message=message, code=ErrorCode.EXTERNAL)


class PromotionResult(BaseModel):
    """Structured result of the atomic draft promotion procedure."""
    success: bool
    message: str = ""
    new_record_id: Optional[str] = None


class CurrentUser(BaseModel):
    id: str


# =============================================================================
# COLLECTIONS
# =============================================================================

class CollectionCreate(BaseModel):
    """Header fields plus the ordered podcast ids to attach."""
    title: str = Field(min_length=3, max_length=50)
    description: Optional[str] = Field(default=None, max_length=200)
    is_public: bool = True
    cover_image_url: Optional[str] = None
    item_ids: List[str] = Field(min_length=1)

    @field_validator("title", "description", mode="before")
    @classmethod
    def _strip(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("cover_image_url")
    @classmethod
    def _check_url(cls, value):
        if value is not None and not value.startswith(("http://", "https://")):
            raise ValueError("Cover image must be an http(s) URL")
        return value

    @field_validator("item_ids")
    @classmethod
    def _no_duplicates(cls, value):
        if len(set(value)) != len(value):
            raise ValueError("A podcast can only appear once in a collection")
        return value
