"""
Web research for draft sources, backed by Tavily through LangChain.
"""

import asyncio
import logging
import os
from typing import List

from langchain_community.tools.tavily_search import TavilySearchResults

from podforge.schemas import ResearchSource, SourceOrigin
from podforge.settings import settings

logger = logging.getLogger(__name__)

# Set Tavily API key in environment (required by langchain)
if settings.TAVILY_API_KEY:
    os.environ["TAVILY_API_KEY"] = settings.TAVILY_API_KEY

SNIPPET_LENGTH = 280


class WebResearcher:
    """
    Looks up a topic and returns the hits as `ResearchSource` entries.

    Research is an enrichment: without an API key, or when the search fails,
    the writer proceeds with no sources instead of failing the draft.
    """

    def __init__(self, max_results: int = 5):
        self.max_results = max_results

    @property
    def enabled(self) -> bool:
        return bool(settings.TAVILY_API_KEY)

    async def search(self, query: str) -> List[ResearchSource]:
        if not self.enabled:
            logger.info("TAVILY_API_KEY not configured; skipping research for %r", query)
            return []

        try:
            search = TavilySearchResults(max_results=self.max_results, search_depth="advanced")
            # The tool is synchronous; keep it off the event loop
            results = await asyncio.to_thread(search.invoke, {"query": query})
        except Exception as e:
            logger.warning("Research failed for %r: %s", query, e)
            return []

        if not isinstance(results, list):
            logger.warning("Research returned no result list for %r: %s", query, results)
            return []

        sources = []
        for res in results:
            if not isinstance(res, dict) or not res.get("url"):
                continue
            content = res.get("content") or ""
            sources.append(ResearchSource(
                title=res.get("title") or res["url"],
                url=res["url"],
                snippet=content[:SNIPPET_LENGTH] or None,
                content=content or None,
                origin=SourceOrigin.WEB,
            ))
        return sources


def format_research_notes(sources: List[ResearchSource]) -> str:
    """Format sources the way the writer prompt expects them."""
    formatted = []
    for source in sources:
        formatted.append(f"Source: {source.url}\nTitle: {source.title}\nContent: {source.content or source.snippet or ''}")
    return "\n\n".join(formatted)
