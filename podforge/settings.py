"""
Application Settings

This module provides a centralized settings class that loads environment
variables from the .env file and makes them available throughout the application.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# The project root is one level up from the package folder
PROJECT_ROOT = Path(__file__).parent.parent
load_dotenv(PROJECT_ROOT / ".env")


def _split_csv(value: str) -> list:
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings:
    """
    Centralized settings class that provides access to all environment variables.
    Usage:
        from podforge.settings import settings
        api_key = settings.GEMINI_API_KEY
    """

    # Google Gemini (script and narrative generation)
    GEMINI_API_KEY: str = os.getenv("GEMINI_API_KEY", "")
    GEMINI_MODEL: str = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")

    # Tavily API Key (web research for draft sources)
    TAVILY_API_KEY: str = os.getenv("TAVILY_API_KEY", "")

    # Database; empty means in-memory storage
    DATABASE_URL: str = os.getenv("DATABASE_URL", "")

    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # Wizard session persistence
    SESSION_MAX_AGE_HOURS: float = float(os.getenv("SESSION_MAX_AGE_HOURS", "24"))
    SESSION_SAVE_DEBOUNCE_SECONDS: float = float(os.getenv("SESSION_SAVE_DEBOUNCE_SECONDS", "1.0"))
    SESSION_SCHEMA_VERSION: int = int(os.getenv("SESSION_SCHEMA_VERSION", "2"))

    # Generation
    GENERATION_TIMEOUT_SECONDS: float = float(os.getenv("GENERATION_TIMEOUT_SECONDS", "180"))
    PROGRESS_FRAME_SECONDS: float = float(os.getenv("PROGRESS_FRAME_SECONDS", str(1 / 30)))

    CORS_ORIGINS: list = _split_csv(os.getenv("CORS_ORIGINS", "http://localhost:3000"))

    @classmethod
    def validate(cls) -> None:
        """Validate that all required environment variables are set."""
        errors = []

        if not cls.GEMINI_API_KEY:
            errors.append("GEMINI_API_KEY is not set in .env file")

        if errors:
            raise ValueError(f"Configuration errors: {', '.join(errors)}")


# Create a singleton instance for easy import
settings = Settings()
