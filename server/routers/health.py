"""
Health check endpoints for production deployment.

Provides:
- /health - Basic liveness check (is the app running?)
- /ready - Readiness check (can the app handle requests?)
- /metrics - Room and game metrics for monitoring
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

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
async def readiness_check(request: Request):
    """
    Readiness check - can the app handle requests?

    The server is ready once the room registry exists (after startup and
    before shutdown). Returns 503 otherwise.
    """
    ready = getattr(request.app.state, "room_manager", None) is not None
    return JSONResponse(
        status_code=200 if ready else 503,
        content={
            "status": "ok" if ready else "starting",
            "checks": {"room_manager": {"status": "ok" if ready else "not_ready"}},
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )


@router.get("/metrics")
async def metrics(request: Request):
    """
    Expose application metrics for monitoring.

    Returns room and game counts useful for dashboards and alerting.
    """
    metrics_data = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

    room_manager = getattr(request.app.state, "room_manager", None)
    if room_manager is not None:
        rooms = room_manager.rooms
        metrics_data.update({
            "active_rooms": len(rooms),
            "total_players": sum(len(r.players) for r in rooms.values()),
            "human_players": sum(r.human_player_count() for r in rooms.values()),
            "games_in_progress": sum(1 for r in rooms.values() if r.in_progress()),
        })

    return metrics_data
