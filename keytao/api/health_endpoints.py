"""
Health check endpoint
"""
import logging
from datetime import datetime

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from keytao.config.settings import get_settings
from keytao.core.db import get_db
from keytao.core.error_handlers import error_handler

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(db: Session = Depends(get_db)):
    """Database connectivity, sync configuration and error statistics"""
    settings = get_settings()
    details = {
        "database": {"status": "unknown"},
        "github": {
            "configured": bool(settings.github.token or settings.github.has_app_credentials),
            "repository": f"{settings.github.owner}/{settings.github.repo}",
        },
        "sync": {"continuation": bool(settings.sync.continuation_url)},
    }

    try:
        db.execute(text("SELECT 1"))
        details["database"] = {"status": "healthy"}
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        details["database"] = {"status": "unhealthy", "error": str(e)}

    return {
        "status": "healthy" if details["database"]["status"] == "healthy" else "unhealthy",
        "version": settings.app_version,
        "timestamp": datetime.utcnow().isoformat(),
        "details": details,
        "error_statistics": error_handler.get_error_statistics(),
    }
