from fastapi import APIRouter, Depends, Response, status

from wasm2openapi.api.dependencies import get_dispatcher
from wasm2openapi.api.dispatcher import InvocationDispatcher
from wasm2openapi.api.schemas import HealthResponse, ReadinessResponse
from wasm2openapi.settings import InstancePolicy

router = APIRouter()


@router.get("/healthz/live", response_model=HealthResponse)
async def liveness() -> HealthResponse:
    """Liveness check: the process is up."""
    return HealthResponse()


@router.get("/healthz/ready", response_model=ReadinessResponse)
async def readiness(
    response: Response,
    dispatcher: InvocationDispatcher = Depends(get_dispatcher),
) -> ReadinessResponse:
    """Readiness check: reports the instance policy and whether the shared context is live."""
    policy = dispatcher.policy.value
    if dispatcher.policy is InstancePolicy.PER_REQUEST:
        return ReadinessResponse(policy=policy, instance="n/a")
    if dispatcher.shared_context_live:
        return ReadinessResponse(policy=policy, instance="up")
    response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return ReadinessResponse(status="degraded", policy=policy, instance="down")
