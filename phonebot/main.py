"""Call controller FastAPI application."""
from fastapi import FastAPI
from contextlib import asynccontextmanager

from phonebot.core.logging import setup_logging
from phonebot.db.database import init_db
from phonebot.api import health
from phonebot.api.webhooks import events, telephony


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    setup_logging("controller")
    await init_db()
    yield


app = FastAPI(
    title="Phonebot Call Controller",
    description="Call control for the phone voice assistant",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health.router, tags=["health"])
app.include_router(telephony.router, prefix="/webhooks", tags=["webhooks"])
app.include_router(events.router, prefix="/webhooks", tags=["webhooks"])
