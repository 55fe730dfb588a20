"""
Creation wizard flow: intents, steps, path tables and the state machine.
"""

from podforge.flow.machine import FlowStateMachine, TransitionResult
from podforge.flow.steps import GenerationKind, Intent, Step

__all__ = ["FlowStateMachine", "TransitionResult", "GenerationKind", "Intent", "Step"]
