"""
Admin API routers.

Provides endpoints for:
- Pumpkin moderation (approve, reject, delete)
- Vote maintenance (reset, recount)
"""
from fastapi import APIRouter

from app.api.v1.admin.moderation import router as moderation_router
from app.api.v1.admin.votes import router as votes_admin_router

# Combined admin router
admin_router = APIRouter(tags=["admin"])

admin_router.include_router(
    moderation_router,
    prefix="/admin/pumpkins",
    tags=["admin-pumpkins"]
)

admin_router.include_router(
    votes_admin_router,
    prefix="/admin/votes",
    tags=["admin-votes"]
)

__all__ = ["admin_router"]
