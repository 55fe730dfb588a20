"""
Gemini Generation Service - LangGraph Implementation

Draft pipeline:
  research → write → END

1. research - Tavily web search on the normalized topic → sources
2. write    - Gemini with structured output → {title, script}

Narrative options are a single structured Gemini call.

Every failure (LLM, network, malformed output) surfaces as `GenerationError`.
"""

import logging
from typing import List, Optional, TypedDict

from langchain_core.messages import HumanMessage, SystemMessage
from langchain_google_genai import ChatGoogleGenerativeAI
from langgraph.graph import StateGraph, END
from pydantic import BaseModel, Field

from podforge.errors import GenerationError
from podforge.generation.prompts import (
    LENGTH_GUIDANCE,
    NARRATIVE_ARCHITECT_PROMPT,
    SCRIPT_WRITER_PROMPT,
    build_narrative_brief,
    build_script_brief,
)
from podforge.generation.research import WebResearcher, format_research_notes
from podforge.schemas import DraftInputs, GeneratedDraft, NarrativeOption, ResearchSource
from podforge.settings import settings

logger = logging.getLogger(__name__)


# --- Structured outputs ---

class ScriptOutput(BaseModel):
    title: str = Field(description="Short, concrete podcast title.")
    script: str = Field(description="Full narration text.")


class NarrativeOptionsOutput(BaseModel):
    options: List[NarrativeOption] = Field(description="Exactly three distinct storylines.")


class DraftGraphState(TypedDict):
    inputs: dict
    sources: List[dict]
    draft: Optional[dict]


class GeminiGenerationService:
    """
    Script and narrative generation on Gemini.

    The chat model is created on first use so the service can be built
    (and the app imported) without credentials.
    """

    def __init__(
        self,
        model: Optional[str] = None,
        temperature: float = 0.7,
        researcher: Optional[WebResearcher] = None,
    ):
        self.model = model or settings.GEMINI_MODEL
        self.temperature = temperature
        self.researcher = researcher or WebResearcher()
        self._llm: Optional[ChatGoogleGenerativeAI] = None
        self.graph = self._build_graph()

    @property
    def llm(self) -> ChatGoogleGenerativeAI:
        if self._llm is None:
            self._llm = ChatGoogleGenerativeAI(
                model=self.model,
                temperature=self.temperature,
                google_api_key=settings.GEMINI_API_KEY,
            )
        return self._llm

    # =========================================================================
    # GRAPH
    # =========================================================================

    def _build_graph(self):
        workflow = StateGraph(DraftGraphState)
        workflow.add_node("research", self._research_node)
        workflow.add_node("write", self._write_node)
        workflow.set_entry_point("research")
        workflow.add_edge("research", "write")
        workflow.add_edge("write", END)
        return workflow.compile()

    async def _research_node(self, state: DraftGraphState) -> dict:
        inputs = state["inputs"]
        query = inputs.get("topic") or ""
        if inputs.get("motivation"):
            query = f"{query}: {inputs['motivation']}"
        logger.info("--- RESEARCH: %s ---", query[:80])
        sources = await self.researcher.search(query)
        return {"sources": [s.model_dump(mode="json") for s in sources]}

    async def _write_node(self, state: DraftGraphState) -> dict:
        inputs = state["inputs"]
        sources = [ResearchSource(**s) for s in state.get("sources") or []]
        logger.info("--- WRITE: %d research sources ---", len(sources))

        system_prompt = SCRIPT_WRITER_PROMPT.format(
            length_guidance=LENGTH_GUIDANCE.get(inputs.get("duration") or "", LENGTH_GUIDANCE["medium"]),
        )
        writer = self.llm.with_structured_output(ScriptOutput)
        result = await writer.ainvoke([
            SystemMessage(content=system_prompt),
            HumanMessage(content=build_script_brief(inputs, format_research_notes(sources))),
        ])
        if result is None:
            raise GenerationError("Writer returned no structured output")
        return {"draft": result.model_dump()}

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    async def generate_draft(self, inputs: DraftInputs) -> GeneratedDraft:
        try:
            final_state = await self.graph.ainvoke({
                "inputs": inputs.model_dump(mode="json", exclude={"raw_inputs"}),
                "sources": [],
                "draft": None,
            })
        except GenerationError:
            raise
        except Exception as e:
            raise GenerationError(f"Draft generation failed: {e}") from e

        draft = final_state.get("draft")
        if not draft or not draft.get("script", "").strip():
            raise GenerationError("Draft generation produced an empty script")

        return GeneratedDraft(
            title=draft.get("title") or inputs.topic,
            script=draft["script"],
            sources=[ResearchSource(**s) for s in final_state.get("sources") or []],
        )

    async def generate_narrative_options(self, topic_a: str, topic_b: str, catalyst: str) -> List[NarrativeOption]:
        try:
            architect = self.llm.with_structured_output(NarrativeOptionsOutput)
            result = await architect.ainvoke([
                SystemMessage(content=NARRATIVE_ARCHITECT_PROMPT),
                HumanMessage(content=build_narrative_brief(topic_a, topic_b, catalyst)),
            ])
        except Exception as e:
            raise GenerationError(f"Narrative generation failed: {e}") from e

        if result is None or not result.options:
            raise GenerationError("Narrative generation returned no options")
        return list(result.options)
