from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Liveness check.

    Returns:
        dict: A dictionary with a single "status" key set to "ok".
    """

    return {"status": "ok"}


@router.get("/health/ready")
async def readiness_check(request: Request) -> JSONResponse:
    """Readiness check: verifies the rate limit store is reachable.

    Returns 503 when the store does not answer, so load balancers stop routing
    to an instance whose limiters would be failing open.
    """

    store = request.app.state.kv_store
    store_ok = await store.ping()
    return JSONResponse(
        status_code=200 if store_ok else 503,
        content={
            "status": "ok" if store_ok else "degraded",
            "store": {"backend": store.backend_name, "reachable": store_ok},
        },
    )
