"""Text generation collaborators: the service contract and the Gemini implementation."""

from podforge.generation.agent import GeminiGenerationService
from podforge.generation.base import GenerationService

__all__ = ["GenerationService", "GeminiGenerationService"]
