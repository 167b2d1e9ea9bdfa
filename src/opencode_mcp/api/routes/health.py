"""
Route de liveness.
"""
from fastapi import APIRouter

router = APIRouter()


@router.get("/health")
async def health_check():
    """Toujours `ok` tant que le processus répond."""
    return {"status": "ok"}
