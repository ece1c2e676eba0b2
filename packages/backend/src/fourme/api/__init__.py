"""API route aggregation.

All routers registered here get mounted in main.py under /api.
Auth is applied at the include_router level with the dependencies
parameter, so every protected route answers 401 before it looks at
its path parameters. The auth router is open (it protects /auth/me
itself); /health lives outside /api entirely.
"""

from fastapi import APIRouter, Depends

from fourme.api.auth import router as auth_router
from fourme.api.comments import router as comments_router
from fourme.api.projects import router as projects_router
from fourme.api.tasks import router as tasks_router
from fourme.auth.dependencies import get_current_user

# All protected routers require authentication
_auth = [Depends(get_current_user)]

api_router = APIRouter(prefix="/api")

# Open routes — no auth required
api_router.include_router(auth_router, tags=["auth"])

# Protected routes — require a valid access token
api_router.include_router(projects_router, tags=["projects", "boards", "labels"], dependencies=_auth)
api_router.include_router(tasks_router, tags=["tasks"], dependencies=_auth)
api_router.include_router(comments_router, tags=["comments", "attachments"], dependencies=_auth)
