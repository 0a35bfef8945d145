"""Liveness endpoint for the relay process.

Answers without touching credentials or the backend, so it stays green while
upstream endpoints are rate limited or down.
"""

from fastapi import APIRouter

router = APIRouter(tags=["System"])


@router.get("/health")
async def health_check() -> dict:
    """Report that the relay is accepting requests."""
    return {"status": "ok"}
