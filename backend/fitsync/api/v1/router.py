"""
API Router v1

Combines all route modules.
"""

from fastapi import APIRouter

from fitsync.api.v1.routes import fit

api_router = APIRouter()

api_router.include_router(fit.router, prefix="/fit", tags=["Fitness sync"])
