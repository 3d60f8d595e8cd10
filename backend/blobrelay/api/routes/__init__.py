"""API route registration."""

from fastapi import APIRouter

from blobrelay.api.routes import files, health, system, uploads

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(system.router, prefix="/system", tags=["system"])
api_router.include_router(files.router, prefix="/files", tags=["files"])
api_router.include_router(uploads.router, prefix="/uploads", tags=["uploads"])
