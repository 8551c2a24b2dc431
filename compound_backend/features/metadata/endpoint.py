from fastapi import APIRouter

from .routes import router as metadata_routes

router = APIRouter()
router.include_router(metadata_routes, prefix="/meta", tags=["Metadata"])
