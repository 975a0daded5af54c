"""FastAPI application factory."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from reelcast.api.middleware import reelcast_error_handler
from reelcast.api.routes import batches, pipeline, videos
from reelcast.models.errors import ReelcastError


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Reelcast",
        description="Asynchronous job orchestration for AI short-video generation",
        version="0.1.0",
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Error handlers
    app.add_exception_handler(ReelcastError, reelcast_error_handler)

    # Routes
    app.include_router(videos.router)
    app.include_router(pipeline.router)
    app.include_router(batches.router)

    @app.get("/health")
    async def health():
        return {"status": "ok", "version": "0.1.0"}

    return app


app = create_app()
