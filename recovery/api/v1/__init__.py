"""
API v1 router initialization and setup.
"""
from fastapi import APIRouter
from .endpoints import leads, platforms

api_router = APIRouter()

api_router.include_router(
    leads.router,
    prefix="/leads",
    tags=["leads"]
)

api_router.include_router(
    platforms.router,
    prefix="/platforms",
    tags=["platforms"]
)
