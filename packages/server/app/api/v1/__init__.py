"""
API v1 Router

Org-scoped endpoints read the organization from the `x-org-id` header.
"""

from fastapi import APIRouter
from . import dashboard, organizations, tasks, users

router = APIRouter()

router.include_router(organizations.router, prefix="/orgs", tags=["Organizations"])
router.include_router(tasks.router, prefix="/tasks", tags=["Tasks"])
router.include_router(dashboard.router, prefix="/dashboard", tags=["Dashboard"])
router.include_router(users.router, prefix="/users", tags=["Users"])


@router.get("/", tags=["API"])
async def api_root():
    """API root - returns version and available endpoints."""
    return {
        "api": "v1",
        "version": "0.1.0",
        "endpoints": [
            "/orgs",
            "/tasks",
            "/dashboard",
            "/users",
        ],
    }
