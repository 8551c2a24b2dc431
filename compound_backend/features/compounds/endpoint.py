"""Expose the compound router for the FastAPI application."""

from fastapi import APIRouter

from .routes import router as compound_routes

router = APIRouter()
router.include_router(compound_routes, prefix="/compounds", tags=["Compounds"])
