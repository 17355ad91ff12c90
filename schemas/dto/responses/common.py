"""Response bodies shared by every router: errors, health and bare messages."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class ErrorResponse(BaseModel):
    """Body of every non-2xx response; see errors.AppError.to_dict()."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = False
    message: str
    code: str
    field: Optional[str] = None
    details: Optional[Any] = None


class HealthResponse(BaseModel):
    """GET /health: dependency checks plus the last run of each sweeper job."""

    model_config = ConfigDict(populate_by_name=True)

    status: str
    checks: dict[str, str]
    sweeps: list[dict[str, Any]] = []


class MessageResponse(BaseModel):
    """Acknowledgement for operations with nothing to return (logout, reset request)."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: Optional[str] = None
