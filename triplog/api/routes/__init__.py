"""
API Routes
"""
from fastapi import APIRouter

from triplog.api.routes.admin import router as admin_router
from triplog.api.webhooks.line import router as line_router

router = APIRouter()

router.include_router(line_router, prefix="/line", tags=["Webhooks"])
router.include_router(admin_router, prefix="/admin", tags=["Admin"])
