"""Expose the export router for the FastAPI application."""

from fastapi import APIRouter

from .routes import router as export_routes

router = APIRouter()
router.include_router(export_routes)
