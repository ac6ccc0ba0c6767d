"""Health check endpoints."""

from fastapi import APIRouter, Request
from sqlalchemy import text

from clinic_ledger import __version__

router = APIRouter()


@router.get("/health")
async def health_check() -> dict:
    """Basic health check."""
    return {
        "status": "healthy",
        "service": "clinic-ledger",
        "version": __version__,
    }


@router.get("/health/ready")
async def readiness_check(request: Request) -> dict:
    """Readiness check - verifies the ledger store answers."""
    try:
        async with request.app.state.store.read() as session:
            await session.execute(text("SELECT 1"))
    except Exception as e:
        return {"status": "not_ready", "errors": [f"Store check failed: {e}"]}
    return {"status": "ready"}


@router.get("/health/live")
async def liveness_check() -> dict:
    """Liveness check - basic process health."""
    return {"status": "alive"}
