"""Media consumer FastAPI application."""
from fastapi import FastAPI
from contextlib import asynccontextmanager

from phonebot.core.dependencies import get_pipeline_manager
from phonebot.core.logging import setup_logging
from phonebot.db.database import init_db
from phonebot.api import calls


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    setup_logging("consumer")
    await init_db()
    yield
    # Shutdown
    await get_pipeline_manager().shutdown()


app = FastAPI(
    title="Phonebot Media Consumer",
    description="Streams call audio to transcription and speaks answers back",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(calls.router, tags=["calls"])
