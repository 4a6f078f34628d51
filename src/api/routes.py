"""Routes mounted under /api."""

from __future__ import annotations

from fastapi import APIRouter

from api.calls import router as calls_router

router = APIRouter()
router.include_router(calls_router)


@router.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}
