from fastapi import APIRouter

from compound_backend.api.health import router as health_router
from compound_backend.features.compounds.endpoint import router as compounds_router
from compound_backend.features.export.endpoint import router as export_router
from compound_backend.features.metadata.endpoint import router as metadata_router
from compound_backend.features.uploads.endpoint import router as uploads_router

api_router = APIRouter()
api_router.include_router(health_router)
api_router.include_router(export_router)
api_router.include_router(compounds_router)
api_router.include_router(metadata_router)
api_router.include_router(uploads_router)
