from fastapi import APIRouter

from gridbase.api.rows import router as rows_router
from gridbase.api.tables import router as tables_router
from gridbase.api.views import router as views_router

api_router = APIRouter()
api_router.include_router(tables_router, tags=["tables"])
api_router.include_router(rows_router, tags=["rows"])
api_router.include_router(views_router, tags=["views"])
