"""Health check endpoints."""

from fastapi import APIRouter

from ebtracker.core.errors import success_response

router = APIRouter()


@router.get("/health")
def health() -> dict[str, object]:
    """Simple liveness endpoint."""

    return success_response({"status": "ok"})
