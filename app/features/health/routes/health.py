import time
from datetime import datetime, timezone

from fastapi import APIRouter, status

from app.platform.config import settings
from app.platform.response import api_response

router = APIRouter()

STARTED_AT = time.monotonic()


@router.get("/health", tags=["health"])
async def health_check():
    return api_response(
        data={
            "status": "ok",
            "service": settings.APP_NAME,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "uptime": round(time.monotonic() - STARTED_AT, 3),
            "environment": settings.ENVIRONMENT,
        },
        message="Service is healthy",
        status_code=status.HTTP_200_OK,
    )
