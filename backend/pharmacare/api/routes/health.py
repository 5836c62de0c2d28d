"""
Liveness endpoint. Does not touch the store.
"""

from fastapi import APIRouter
from pydantic import BaseModel

from pharmacare import __version__

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    status: str
    version: str


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse(status="ok", version=__version__)
