"""Contract of the external text generation collaborator."""

from typing import List, Protocol

from podforge.schemas import DraftInputs, GeneratedDraft, NarrativeOption


class GenerationService(Protocol):
    """Implementations raise `GenerationError` for every failure."""

    async def generate_draft(self, inputs: DraftInputs) -> GeneratedDraft:
        ...

    async def generate_narrative_options(self, topic_a: str, topic_b: str, catalyst: str) -> List[NarrativeOption]:
        ...
