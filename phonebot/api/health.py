"""Health check endpoint."""
import logging
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from phonebot.db.database import get_db
from phonebot.services.persistence.counter import CallCounter

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health")
async def health_check(db: AsyncSession = Depends(get_db)):
    """Report liveness and the number of calls currently admitted."""
    try:
        current_calls = await CallCounter(db).value()
    except Exception as e:
        logger.error(f"[HEALTH] Database unavailable: {type(e).__name__}: {str(e)}")
        raise HTTPException(status_code=503, detail="Database unavailable")
    return {"status": "healthy", "currentCalls": current_calls}
