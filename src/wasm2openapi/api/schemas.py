from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class HealthResponse(BaseModel):
    status: str = "ok"


class ReadinessResponse(BaseModel):
    status: str = "ok"
    policy: str
    # state of the shared context; "n/a" under the per-request policy
    instance: str = "up"


class ErrorResponse(BaseModel):
    """JSON body of every per-request error."""

    model_config = ConfigDict(extra="allow")

    kind: str
    message: str
    path: str | None = None
    expected: str | None = None
    found: str | None = None
