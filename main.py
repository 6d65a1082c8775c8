import asyncio
import inspect
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.staticfiles import StaticFiles
from openai import AsyncOpenAI

from dal.history_dal import HistoryDAL
from routes.analysis_route import router as analysis_router
from routes.history_route import router as history_router
from services.planner.generation_client import UrbanModelClient
from services.result_store import RESULTS_URL_PREFIX, ResultStore
from utils.database_init import AsyncDatabaseInitializer
from utils.file_cleaner import FileCleaner

BASE_DIR = Path(__file__).resolve().parent

from dotenv import load_dotenv

load_dotenv()  # Load environment variables from .env file if present

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))
LOGGER = logging.getLogger("urban-planner")

DATA_DIR = Path(os.getenv("DATA_DIR", str(BASE_DIR / "data"))).expanduser()


async def _close_client(client) -> None:
    """Close the OpenAI client if it exposes a close/aclose method."""
    aclose = getattr(client, "aclose", None) or getattr(client, "close", None)
    if aclose is None:
        return
    try:
        if inspect.iscoroutinefunction(aclose):
            await aclose()
        else:
            result = aclose()
            if inspect.isawaitable(result):
                await result
    except Exception as exc:
        # Ignore shutdown errors to avoid masking more important issues.
        LOGGER.debug("Error closing OpenAI client: %s", exc)


def create_app(data_dir: Optional[Path] = None) -> FastAPI:
    """
    Create and configure the FastAPI application instance.

    Args:
        data_dir: Directory holding `uploads/` and `results/`; defaults to DATA_DIR.
    """
    root = Path(data_dir) if data_dir is not None else DATA_DIR
    results_dir = root / "results"
    uploads_dir = root / "uploads"

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Lifespan manager to initialize:
          - the SQLite history database (at DATABASE_DIR/app.db)
          - the OpenAI async client and the model client built on it
          - the result store and its periodic cleanup task
        and attach them to `app.state`.
        """
        db_initializer = AsyncDatabaseInitializer()
        await db_initializer.ensure_database()
        app.state.db_initializer = db_initializer
        app.state.history_dal = HistoryDAL(db_initializer)

        openai_api_key = os.getenv("OPENAI_API_KEY")
        if not openai_api_key:
            raise RuntimeError("OPENAI_API_KEY environment variable is not set")

        try:
            openai_client = AsyncOpenAI()
        except Exception as exc:
            raise RuntimeError("Failed to initialize OpenAI Async client") from exc

        app.state.openai_client = openai_client
        app.state.model_client = UrbanModelClient(openai_client)

        store = ResultStore(results_dir, uploads_dir)
        app.state.result_store = store
        cleaner = FileCleaner(store)
        cleanup_task = asyncio.create_task(cleaner.run_periodic_cleanup())

        LOGGER.info("Urban Planning Advisor ready; results in %s", results_dir)
        try:
            yield
        finally:
            cleanup_task.cancel()
            try:
                await cleanup_task
            except asyncio.CancelledError:
                pass
            await _close_client(openai_client)

    app = FastAPI(title="Urban Planning Advisor", lifespan=lifespan)

    # The directory is created by the ResultStore during startup.
    app.mount(RESULTS_URL_PREFIX, StaticFiles(directory=results_dir, check_dir=False), name="results")

    @app.get("/health")
    async def health(request: Request):
        """
        Simple health check that verifies history storage and model client presence.
        """
        has_db = hasattr(request.app.state, "history_dal")
        has_model = getattr(request.app.state, "model_client", None) is not None
        return {"ok": True, "db_initialized": has_db, "model_available": has_model}

    # Register application routers
    app.include_router(analysis_router)
    app.include_router(history_router)

    return app


app = create_app()
