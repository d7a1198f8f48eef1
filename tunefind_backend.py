"""tunefind backend.

This FastAPI application receives an audio clip from the browser, asks the
RapidAPI Shazam service what the clip is, then looks the recognised track up
in the Spotify catalog so the front end can show and embed a player for it.
A running count of successful and failed scans is kept in a small sqlite
file. The environment variables defined on the hosting platform configure
the API credentials (see ``tunefind/config.py``).
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tunefind.catalog import CatalogResolver
from tunefind.config import Settings, load_settings
from tunefind.pipeline import PipelineController
from tunefind.recognize import RecognitionClient
from tunefind.routes import router as api_router
from tunefind.stats_store import SqliteStatsStore

logger = logging.getLogger("tunefind")


def build_controller(settings: Settings) -> PipelineController:
    """Wire the pipeline stages and the stats store from ``settings``."""
    return PipelineController(
        recognizer=RecognitionClient(settings),
        resolver=CatalogResolver(settings),
        stats_store=SqliteStatsStore(settings.stats_db_path),
        auto_start=settings.auto_start,
    )


def create_app(
    settings: Optional[Settings] = None,
    controller: Optional[PipelineController] = None,
) -> FastAPI:
    settings = settings or load_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # The stats store is only opened once the server actually starts.
        if getattr(app.state, "controller", None) is None:
            app.state.controller = build_controller(settings)
        missing = [
            name
            for name, value in (
                ("RAPID_API_KEY", settings.rapid_api_key),
                ("SPOTIFY_CLIENT_ID", settings.spotify_client_id),
                ("SPOTIFY_CLIENT_SECRET", settings.spotify_client_secret),
            )
            if not value
        ]
        if missing:
            logger.warning("Missing configuration: %s; scans will fail until set", ", ".join(missing))
        logger.info("tunefind backend started (auto_start=%s)", settings.auto_start)
        yield
        logger.info("tunefind backend stopped")

    app = FastAPI(title="tunefind", lifespan=lifespan)
    app.state.controller = controller

    # Configure CORS from TUNEFIND_CORS_ORIGINS; any origin by default.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(api_router)

    @app.get("/")
    def read_root():
        return {"message": "tunefind backend"}

    return app


app = create_app()


if __name__ == "__main__":  # pragma: no cover
    import uvicorn

    uvicorn.run("tunefind_backend:app", host="0.0.0.0", port=8000, reload=True)
