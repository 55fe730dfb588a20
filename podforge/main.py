import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from podforge.api.collections import router as collections_router
from podforge.api.drafts import router as drafts_router
from podforge.api.wizard import router as wizard_router
from podforge.database import create_tables, dispose_engine
from podforge.generation.agent import GeminiGenerationService
from podforge.services import Services, build_services
from podforge.settings import settings
from podforge.websocket_routes import router as websocket_router
from podforge.wizard import WizardRegistry

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("podforge")


def create_app(services: Optional[Services] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler - runs on startup/shutdown."""
        active = services or build_services()
        app.state.services = active
        app.state.registry = WizardRegistry(
            active.storage,
            active.session_backend,
            active.generation,
            active.invalidator,
        )

        if active.storage_mode == "sql":
            logger.info("Initializing database...")
            await create_tables()
        else:
            logger.info("Using in-memory storage")

        if isinstance(active.generation, GeminiGenerationService):
            try:
                settings.validate()
            except ValueError as e:
                logger.warning("%s - generation requests will fail", e)

        yield

        await app.state.registry.close()
        if active.storage_mode == "sql":
            await dispose_engine()
        logger.info("Shutting down...")

    app = FastAPI(title="podforge", lifespan=lifespan)

    # Allow CORS for frontend
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(websocket_router)
    app.include_router(wizard_router)
    app.include_router(drafts_router)
    app.include_router(collections_router)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "storage": app.state.services.storage_mode}

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
