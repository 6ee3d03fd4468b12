"""Liveness check."""

from fastapi import APIRouter, Depends

from landlordcomply.core.config import Settings, get_settings
from landlordcomply.core.utc import utc_now_iso

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health(settings: Settings = Depends(get_settings)):
    return {
        "status": "ok",
        "app": settings.app_name,
        "version": settings.app_version,
        "timestamp": utc_now_iso(),
    }
