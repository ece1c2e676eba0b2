"""Health check endpoint.

A liveness probe: always 200 while the process can serve requests.
Database reachability is reported in the body, not the status code.
"""

from fastapi import APIRouter
from sqlalchemy import text

from fourme import __version__
from fourme.db.engine import engine

router = APIRouter()


@router.get("/health")
async def health_check():
    """Server status plus a best-effort database ping."""
    checks = {"status": "ok", "version": __version__}

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as e:
        checks["database"] = f"error: {type(e).__name__}"

    return checks
