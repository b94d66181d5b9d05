"""HTTP routes for the OAuth broker service."""
from __future__ import annotations

from fastapi import APIRouter, Depends

from app.api.google import router as google_router
from app.core.config import Settings, get_settings

router = APIRouter()
router.include_router(google_router)


@router.get("/health", tags=["health"])
async def health_check(settings: Settings = Depends(get_settings)) -> dict[str, dict[str, str]]:
    """Report the service health information."""
    return {"data": {"status": "ok", "version": settings.version}}
