"""
Flow State Machine

Owns the wizard's current step, its back-stack and the form data every step
writes into. Transitions are validated against the static tables in
`podforge.flow.config`:

  SELECTING_INTENT → <intent path ...> → FINAL_STEP → (external submission)

Generation steps are not part of any path. Advancing past a trigger step
(details, link points) puts the machine in a `generating` sub-state attached
to that step; only `finish_generation()` with the current token moves on.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from podforge.flow.config import (
    BRANCH_OPTIONS,
    FLOW_PATHS,
    GENERATION_TRIGGERS,
    NEXT_STEP_RESOLVERS,
    SHARED_FIELDS,
    STEP_PREREQUISITES,
    STEP_REQUIRED_FIELDS,
    BranchOption,
)
from podforge.flow.steps import GenerationKind, Intent, Step
from podforge.flow.validation import is_empty, validate_fields

logger = logging.getLogger(__name__)

# Back navigation never pops below [SELECTING_INTENT, <first step of the path>]
MIN_BACK_DEPTH = 2


@dataclass
class TransitionResult:
    """Outcome of one navigation request."""
    success: bool
    step: Step
    errors: Dict[str, str] = field(default_factory=dict)
    reason: str = ""
    generation: Optional[GenerationKind] = None
    token: Optional[int] = None


class FlowStateMachine:
    """
    Step navigation for one wizard session.

    `form_data` is owned here; step handlers receive it through the machine
    and must not keep their own copy across a transition.
    """

    def __init__(
        self,
        form_data: Optional[Dict[str, Any]] = None,
        history: Optional[List[Step]] = None,
    ):
        self.form_data: Dict[str, Any] = dict(form_data or {})
        self._history: List[Step] = [Step(s) for s in history] if history else [Step.SELECTING_INTENT]
        self._generating: Optional[GenerationKind] = None
        self._pending_target: Optional[Step] = None
        self._generation_token = 0

    # =========================================================================
    # STATE
    # =========================================================================

    @property
    def current_step(self) -> Step:
        return self._history[-1]

    @property
    def history(self) -> List[Step]:
        return list(self._history)

    @property
    def intent(self) -> Optional[Intent]:
        value = self.form_data.get("intent")
        return Intent(value) if value else None

    @property
    def generating(self) -> Optional[GenerationKind]:
        return self._generating

    @property
    def generation_token(self) -> int:
        return self._generation_token

    def path(self) -> List[Step]:
        intent = self.intent
        return list(FLOW_PATHS[intent]) if intent else []

    def progress_metrics(self) -> Dict[str, Any]:
        """Position of the current step within the active path."""
        path = self.path()
        current = self.current_step
        index = path.index(current) if current in path else -1
        total = len(path)
        return {
            "step": index + 1 if index != -1 else 1,
            "total": total,
            "percent": round((index + 1) / total * 100) if index != -1 and total else 0,
            "is_initial": current == Step.SELECTING_INTENT,
        }

    # =========================================================================
    # TRANSITIONS
    # =========================================================================

    def select_intent(self, intent) -> List[Step]:
        """
        Start a path for `intent`. History restarts at intent selection.
        Changing to a different intent clears every intent-specific field.
        """
        intent = Intent(intent)
        previous = self.intent
        if previous is not None and previous != intent:
            self.form_data = {k: v for k, v in self.form_data.items() if k in SHARED_FIELDS}
            logger.info("Intent changed %s -> %s; cleared intent-specific fields", previous.value, intent.value)

        self._invalidate_generation()
        self._history = [Step.SELECTING_INTENT]
        self.form_data["intent"] = intent.value
        return list(FLOW_PATHS[intent])

    def update_fields(self, values: Dict[str, Any]) -> None:
        if "intent" in values:
            raise ValueError("The intent can only be changed through select_intent()")
        self.form_data.update(values)

    def advance(self, candidate: Optional[Step] = None) -> TransitionResult:
        """
        Validate the current step and move to the next one.

        The next step is the static path successor unless a resolver for the
        current step computes another one. A `candidate` must match one of
        those two. Trigger steps start a generation instead of moving.
        """
        current = self.current_step

        if self._generating is not None:
            return self._reject("A generation is already running for this step.")
        if current in BRANCH_OPTIONS:
            return self._reject("Choose one of the options.", {"option": "Choose one of the options."})

        errors = validate_fields(self.form_data, STEP_REQUIRED_FIELDS.get(current, ()))
        if errors:
            return TransitionResult(False, current, errors=errors, reason="Some information is missing.")

        if current == Step.FINAL_STEP:
            return self._reject("This is the last step; submit it instead.")

        static_next = self._static_next(current)
        if static_next is None:
            return self._reject("No step follows the current one.")
        resolver = NEXT_STEP_RESOLVERS.get(current)
        dynamic_next = resolver(self.form_data) if resolver else None
        target = dynamic_next or static_next

        if candidate is not None:
            candidate = Step(candidate)
            if candidate not in (static_next, dynamic_next):
                return self._reject(
                    f"{candidate.value} cannot be reached from {current.value}.",
                    {"step": "That step is not available from here."},
                )
            target = candidate

        kind = GENERATION_TRIGGERS.get(current)
        if kind is not None:
            self._generation_token += 1
            self._generating = kind
            self._pending_target = target
            return TransitionResult(True, current, generation=kind, token=self._generation_token)

        return self._enter(target)

    def finish_generation(self, token: int, success: bool) -> TransitionResult:
        """
        Resolve the generation started by `advance()`.

        Results carrying an outdated token are ignored: the user has since
        backed out, changed intent, or started over.
        """
        current = self.current_step
        if self._generating is None or token != self._generation_token:
            return TransitionResult(False, current, reason="stale")

        target = self._pending_target
        self._generating = None
        self._pending_target = None
        if not success:
            return TransitionResult(False, current, reason="Generation failed.")
        return self._enter(target)

    def cancel_generation(self) -> bool:
        if self._generating is None:
            return False
        self._invalidate_generation()
        return True

    def go_back(self) -> TransitionResult:
        """
        Pop one step. While generating this only leaves the progress view
        and the machine stays on the step that triggered it.
        """
        if self.cancel_generation():
            return TransitionResult(True, self.current_step)
        if len(self._history) > MIN_BACK_DEPTH:
            self._history.pop()
        return TransitionResult(True, self.current_step)

    def jump_to(self, step: Step, option: Optional[str] = None) -> TransitionResult:
        """Take one branch of a sub-selection step, bypassing the path table."""
        step = Step(step)
        current = self.current_step

        if self._generating is not None:
            return self._reject("A generation is already running for this step.")
        options = BRANCH_OPTIONS.get(current)
        if not options:
            return self._reject(f"{current.value} has no branches.", {"step": "This step has no branches."})

        chosen = self._pick_option(options, step, option)
        if isinstance(chosen, TransitionResult):
            return chosen
        return self._enter(step, staged=chosen.values)

    def reset(self) -> None:
        self._invalidate_generation()
        self._history = [Step.SELECTING_INTENT]
        self.form_data = {}

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _static_next(self, current: Step) -> Optional[Step]:
        path = self.path()
        if not path:
            return None
        if current == Step.SELECTING_INTENT:
            return path[0]
        if current not in path:
            return None
        index = path.index(current) + 1
        return path[index] if index < len(path) else None

    def _pick_option(self, options, step: Step, key: Optional[str]):
        if key is not None:
            matches = [o for o in options if o.key == key]
        else:
            matches = [o for o in options if o.target == step and not o.disabled]
            if not matches:
                matches = [o for o in options if o.target == step]

        if not matches:
            return self._reject("Unknown option.", {"option": "Unknown option."})
        if len(matches) > 1:
            return self._reject("Choose one of the options.", {"option": "Choose one of the options."})

        chosen: BranchOption = matches[0]
        if chosen.disabled:
            return self._reject(f"{chosen.label} is not available yet.", {"option": f"{chosen.label} is not available yet."})
        if chosen.target != step:
            return self._reject(
                f"{chosen.label} leads to {chosen.target.value}, not {step.value}.",
                {"step": "That step does not match the chosen option."},
            )
        return chosen

    def _enter(self, target: Step, staged: Optional[Dict[str, Any]] = None) -> TransitionResult:
        candidate_data = {**self.form_data, **(staged or {})}
        missing = {
            name: "Complete the previous steps first."
            for name in STEP_PREREQUISITES.get(target, ())
            if is_empty(candidate_data.get(name))
        }
        if missing:
            return TransitionResult(
                False, self.current_step, errors=missing,
                reason=f"{target.value} is not available yet.",
            )

        self.form_data = candidate_data
        self._history.append(target)
        return TransitionResult(True, target)

    def _invalidate_generation(self) -> None:
        self._generating = None
        self._pending_target = None
        self._generation_token += 1

    def _reject(self, reason: str, errors: Optional[Dict[str, str]] = None) -> TransitionResult:
        return TransitionResult(False, self.current_step, errors=errors or {}, reason=reason)
