"""
Health check endpoint.

GET /health: checks MongoDB connectivity and reports the expiry sweeper.
Rules:
- MongoDB failure → "unhealthy" (503); the app cannot function without it.
- Sweeper enabled but not running → "degraded" (200); expired credentials
  still fail closed at login, they just linger in the database.
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from schemas.dto.responses.common import HealthResponse

router = APIRouter(tags=["health"])


@router.get(
    "/health",
    response_model=HealthResponse,
    responses={503: {"model": HealthResponse}},
)
async def health_check(request: Request) -> JSONResponse:
    checks: dict[str, str] = {}
    overall = "healthy"

    try:
        db = request.app.state.db
        await db.client.admin.command("ping")
        checks["mongodb"] = "ok"
    except Exception:
        checks["mongodb"] = "error"
        overall = "unhealthy"

    sweeper = getattr(request.app.state, "sweeper", None)
    sweeps: list[dict] = []
    if sweeper is None:
        checks["sweeper"] = "disabled"
    else:
        sweeps = sweeper.get_status()
        if sweeper.running:
            checks["sweeper"] = "ok"
        else:
            checks["sweeper"] = "stopped"
            if overall == "healthy":
                overall = "degraded"

    status_code = 503 if overall == "unhealthy" else 200
    return JSONResponse(
        status_code=status_code,
        content={"status": overall, "checks": checks, "sweeps": sweeps},
    )
