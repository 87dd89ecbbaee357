"""
Health check endpoints for deployment.

Provides:
- /health - Basic liveness check (is the app running?)
- /ready - Readiness check with room and player counts
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Request, Response

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """
    Basic liveness check - is the app running?

    This endpoint should always return 200 if the process is alive.
    """
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/ready")
async def readiness_check(request: Request, response: Response):
    """
    Readiness check - can the app accept games?

    Returns 503 until the room registry has been created at startup.
    """
    room_manager = getattr(request.app.state, "room_manager", None)
    if room_manager is None:
        logger.warning("Readiness check before room registry was created")
        response.status_code = 503
        return {"status": "starting"}

    return {
        "status": "ok",
        "rooms": len(room_manager.rooms),
        "players": room_manager.player_count(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
