"""
API v1 Router
"""

from fastapi import APIRouter
from . import assignments, invitations, projects, tasks

router = APIRouter()

router.include_router(projects.router, prefix="/projects", tags=["Projects"])
router.include_router(assignments.router, prefix="/assignments", tags=["Assignments"])
router.include_router(invitations.router, prefix="/invitations", tags=["Invitations"])
router.include_router(tasks.router, prefix="/tasks", tags=["Tasks"])


@router.get("/", tags=["API"])
async def api_root():
    """API root: version and available endpoints."""
    return {
        "api": "v1",
        "version": "0.1.0",
        "endpoints": [
            "/projects/accessible",
            "/projects/{project_id}/access",
            "/projects/{project_id}/members",
            "/assignments",
            "/invitations/{invitation_id}",
            "/tasks/{task_id}/assignee",
        ],
    }
