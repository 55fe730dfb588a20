"""
Static flow configuration for the creation wizard.

Any change to the order of screens, the fields a screen requires, or the
choices a branch screen offers is made here and nowhere else.
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, Tuple

from podforge.flow.steps import GenerationKind, Intent, Step


# =============================================================================
# PATHS
# =============================================================================

FLOW_PATHS: Dict[Intent, Tuple[Step, ...]] = {
    Intent.LEARN: (
        Step.LEARN_SUB_SELECTION,
        Step.SOLO_TALK_INPUT,
        Step.TONE_SELECTION,
        Step.DETAILS_STEP,
        Step.SCRIPT_EDITING,
        Step.AUDIO_STUDIO_STEP,
        Step.FINAL_STEP,
    ),
    Intent.INSPIRE: (
        Step.INSPIRE_SUB_SELECTION,
        Step.ARCHETYPE_GOAL,
        Step.DETAILS_STEP,
        Step.SCRIPT_EDITING,
        Step.AUDIO_STUDIO_STEP,
        Step.FINAL_STEP,
    ),
    Intent.EXPLORE: (
        Step.LINK_POINTS_INPUT,
        Step.NARRATIVE_SELECTION,
        Step.TONE_SELECTION,
        Step.DETAILS_STEP,
        Step.SCRIPT_EDITING,
        Step.AUDIO_STUDIO_STEP,
        Step.FINAL_STEP,
    ),
    Intent.REFLECT: (
        Step.LEGACY_INPUT,
        Step.TONE_SELECTION,
        Step.DETAILS_STEP,
        Step.SCRIPT_EDITING,
        Step.AUDIO_STUDIO_STEP,
        Step.FINAL_STEP,
    ),
    Intent.ANSWER: (
        Step.QUESTION_INPUT,
        Step.TONE_SELECTION,
        Step.DETAILS_STEP,
        Step.SCRIPT_EDITING,
        Step.AUDIO_STUDIO_STEP,
        Step.FINAL_STEP,
    ),
    Intent.FREESTYLE: (
        Step.FREESTYLE_SELECTION,
        Step.SOLO_TALK_INPUT,
        Step.TONE_SELECTION,
        Step.DETAILS_STEP,
        Step.SCRIPT_EDITING,
        Step.AUDIO_STUDIO_STEP,
        Step.FINAL_STEP,
    ),
}

# Steps every path reconverges on
SHARED_STEPS = (Step.DETAILS_STEP, Step.SCRIPT_EDITING, Step.AUDIO_STUDIO_STEP, Step.FINAL_STEP)


# =============================================================================
# FIELDS
# =============================================================================

STEP_REQUIRED_FIELDS: Dict[Step, Tuple[str, ...]] = {
    Step.SELECTING_INTENT: ("intent",),
    Step.SOLO_TALK_INPUT: ("solo_topic", "solo_motivation"),
    Step.ARCHETYPE_GOAL: ("archetype_topic", "archetype_goal"),
    Step.LINK_POINTS_INPUT: ("link_topic_a", "link_topic_b", "link_catalyst"),
    Step.NARRATIVE_SELECTION: ("link_selected_narrative",),
    Step.LEGACY_INPUT: ("legacy_lesson",),
    Step.QUESTION_INPUT: ("question_to_answer",),
    Step.FREESTYLE_SELECTION: ("freestyle_mode",),
    Step.TONE_SELECTION: ("selected_tone",),
    Step.DETAILS_STEP: ("duration", "narrative_depth"),
    Step.SCRIPT_EDITING: ("final_title", "final_script"),
    Step.AUDIO_STUDIO_STEP: ("voice_gender", "voice_style"),
}

# A step can only be entered when these fields already hold a value
STEP_PREREQUISITES: Dict[Step, Tuple[str, ...]] = {
    Step.ARCHETYPE_GOAL: ("selected_archetype",),
    Step.NARRATIVE_SELECTION: ("narrative_options",),
    Step.SCRIPT_EDITING: ("final_script",),
    Step.FINAL_STEP: ("final_title", "final_script"),
}


@dataclass(frozen=True)
class FieldRule:
    label: str
    min_length: int = 0
    choices: Optional[Tuple[str, ...]] = None


TONES = ("educational", "inspiring", "analytical", "conversational", "narrative")
DURATIONS = ("short", "medium", "long")
DEPTHS = ("overview", "balanced", "deep")
VOICE_GENDERS = ("female", "male")
VOICE_STYLES = ("calm", "energetic", "professional", "inspiring")
VOICE_PACES = ("slow", "moderate", "fast")
FREESTYLE_MODES = ("topic", "own_script")

FIELD_RULES: Dict[str, FieldRule] = {
    "intent": FieldRule("Intent", choices=tuple(i.value for i in Intent)),
    "solo_topic": FieldRule("Topic", min_length=3),
    "solo_motivation": FieldRule("Motivation", min_length=10),
    "archetype_topic": FieldRule("Topic", min_length=3),
    "archetype_goal": FieldRule("Goal", min_length=10),
    "link_topic_a": FieldRule("Topic A", min_length=2),
    "link_topic_b": FieldRule("Topic B", min_length=2),
    "link_catalyst": FieldRule("Catalyst", min_length=10),
    "link_selected_narrative": FieldRule("Narrative"),
    "legacy_lesson": FieldRule("Lesson", min_length=10),
    "question_to_answer": FieldRule("Question", min_length=5),
    "freestyle_mode": FieldRule("Mode", choices=FREESTYLE_MODES),
    "selected_tone": FieldRule("Tone", choices=TONES),
    "duration": FieldRule("Duration", choices=DURATIONS),
    "narrative_depth": FieldRule("Depth", choices=DEPTHS),
    "final_title": FieldRule("Title", min_length=3),
    "final_script": FieldRule("Script", min_length=20),
    "voice_gender": FieldRule("Voice", choices=VOICE_GENDERS),
    "voice_style": FieldRule("Voice style", choices=VOICE_STYLES),
    "voice_pace": FieldRule("Voice pace", choices=VOICE_PACES),
}

# Survive an intent change; everything else belongs to one intent's path
SHARED_FIELDS = frozenset({
    "duration",
    "narrative_depth",
    "voice_gender",
    "voice_style",
    "voice_pace",
    "generate_audio_directly",
})


# =============================================================================
# BRANCH POINTS
# =============================================================================

@dataclass(frozen=True)
class BranchOption:
    key: str
    label: str
    target: Step
    values: Dict[str, str] = field(default_factory=dict)
    disabled: bool = False


ARCHETYPES = ("hero", "sage", "explorer", "rebel", "creator", "caregiver")

BRANCH_OPTIONS: Dict[Step, Tuple[BranchOption, ...]] = {
    Step.LEARN_SUB_SELECTION: (
        BranchOption(
            key="quick_lesson",
            label="Quick lesson",
            target=Step.SOLO_TALK_INPUT,
            values={"style": "solo", "selected_agent": "solo-talk-analyst"},
        ),
        BranchOption(
            key="deep_course",
            label="Deep course",
            target=Step.DETAILS_STEP,
            values={"style": "course"},
            disabled=True,
        ),
    ),
    Step.INSPIRE_SUB_SELECTION: tuple(
        BranchOption(
            key=name,
            label=name.capitalize(),
            target=Step.ARCHETYPE_GOAL,
            values={"style": "archetype", "selected_archetype": f"archetype-{name}"},
        )
        for name in ARCHETYPES
    ),
}


# =============================================================================
# GENERATION TRIGGERS & DYNAMIC SUCCESSORS
# =============================================================================

GENERATION_TRIGGERS: Dict[Step, GenerationKind] = {
    Step.DETAILS_STEP: GenerationKind.DRAFT,
    Step.LINK_POINTS_INPUT: GenerationKind.NARRATIVES,
}


def _freestyle_successor(form_data: dict) -> Optional[Step]:
    if form_data.get("freestyle_mode") == "own_script":
        return Step.SCRIPT_EDITING
    return None


# Return a step to override the static next step, or None to keep it
NEXT_STEP_RESOLVERS: Dict[Step, Callable[[dict], Optional[Step]]] = {
    Step.FREESTYLE_SELECTION: _freestyle_successor,
}


def check_path_table() -> None:
    """Fail loudly if the path table does not cover every intent correctly."""
    missing = set(Intent) - set(FLOW_PATHS)
    if missing:
        raise RuntimeError(f"No flow path for intents: {sorted(i.value for i in missing)}")
    for intent, path in FLOW_PATHS.items():
        if not path or path[-1] != Step.FINAL_STEP:
            raise RuntimeError(f"Path for {intent.value} must end at {Step.FINAL_STEP.value}")
        if Step.SELECTING_INTENT in path:
            raise RuntimeError(f"Path for {intent.value} must start after intent selection")
        if len(set(path)) != len(path):
            raise RuntimeError(f"Path for {intent.value} visits a step twice")
    for step in BRANCH_OPTIONS:
        if step in STEP_REQUIRED_FIELDS:
            raise RuntimeError(f"Branch step {step.value} cannot declare required fields")


check_path_table()
