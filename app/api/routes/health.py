import logging
from typing import Annotated

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from app.services.policy_backend import PolicyBackendClient, get_policy_backend

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
def health() -> dict:
    """Basic liveness check."""
    return {"ok": True}


@router.get("/readyz")
async def readyz(
    backend: Annotated[PolicyBackendClient, Depends(get_policy_backend)],
) -> JSONResponse:
    """Readiness probe: verifies the policy backend answers.

    Returns:
      - 200 when the backend is reachable
      - 503 when the backend is unavailable
    """
    if await backend.ping():
        return JSONResponse(status_code=status.HTTP_200_OK, content={"ok": True, "backend": "ok"})
    # Don't expose backend error details to callers
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"ok": False, "backend": "unavailable"},
    )
