"""
Closed vocabularies of the creation wizard: user intents and wizard steps.
"""

from enum import Enum


class Intent(str, Enum):
    """The user's top-level creative goal, chosen once per path."""
    LEARN = "learn"
    INSPIRE = "inspire"
    EXPLORE = "explore"
    REFLECT = "reflect"
    ANSWER = "answer"
    FREESTYLE = "freestyle"


class Step(str, Enum):
    """Every screen the wizard can show."""
    SELECTING_INTENT = "SELECTING_INTENT"
    LEARN_SUB_SELECTION = "LEARN_SUB_SELECTION"
    INSPIRE_SUB_SELECTION = "INSPIRE_SUB_SELECTION"
    SOLO_TALK_INPUT = "SOLO_TALK_INPUT"
    ARCHETYPE_GOAL = "ARCHETYPE_GOAL"
    LINK_POINTS_INPUT = "LINK_POINTS_INPUT"
    NARRATIVE_SELECTION = "NARRATIVE_SELECTION"
    LEGACY_INPUT = "LEGACY_INPUT"
    QUESTION_INPUT = "QUESTION_INPUT"
    FREESTYLE_SELECTION = "FREESTYLE_SELECTION"
    TONE_SELECTION = "TONE_SELECTION"
    DETAILS_STEP = "DETAILS_STEP"
    SCRIPT_EDITING = "SCRIPT_EDITING"
    AUDIO_STUDIO_STEP = "AUDIO_STUDIO_STEP"
    FINAL_STEP = "FINAL_STEP"


class GenerationKind(str, Enum):
    """External generation calls that run as a side effect of advancing."""
    DRAFT = "draft"
    NARRATIVES = "narratives"
