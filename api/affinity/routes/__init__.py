from fastapi import APIRouter, FastAPI

from .discovery import router as discovery_router
from .match import router as match_router
from .personality import router as personality_router


def include_modular_routers(app: FastAPI) -> None:
    app.include_router(personality_router, tags=["personality"])
    app.include_router(discovery_router, tags=["discovery"])
    app.include_router(match_router, tags=["matches"])


__all__ = ["include_modular_routers", "APIRouter"]
