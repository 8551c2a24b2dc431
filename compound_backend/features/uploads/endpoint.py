"""Expose the upload router for the FastAPI application."""

from fastapi import APIRouter

from .routes import router as upload_routes

router = APIRouter()
router.include_router(upload_routes)
