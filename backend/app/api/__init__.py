from fastapi import APIRouter

from app.api import admin, imports

router = APIRouter()

router.include_router(imports.router, prefix="/imports", tags=["imports"])
router.include_router(admin.router, prefix="/admin", tags=["admin"])
