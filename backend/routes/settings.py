"""Health check and settings endpoints."""

from fastapi import APIRouter, HTTPException, Request

from backend.config import get_config, update_config

router = APIRouter()


@router.get("/health")
async def health():
    """Health check."""
    return {"status": "ok"}


@router.get("/settings")
async def get_settings(request: Request):
    """Get service settings (store backend, rollover throttle, retries, log level)."""
    try:
        return get_config(request.app.state.data_dir)
    except ValueError as e:
        raise HTTPException(500, str(e))


@router.patch("/settings")
async def update_settings(request: Request, body: dict):
    """Update service settings (partial merge). Applied on next start."""
    try:
        return update_config(request.app.state.data_dir, body)
    except ValueError as e:
        raise HTTPException(400, str(e))
