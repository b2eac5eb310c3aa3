from fastapi import APIRouter

from app.features.preview.routes.preview import router as preview_router

api_router = APIRouter()

# Register all feature routes
api_router.include_router(preview_router)
