"""FastAPI API endpoints under /api.

Endpoint groups: health and the command catalog, turns (submit and cancel),
and session/transition state for the UI.
"""

from fastapi import APIRouter

from .catalog import router as catalog_router
from .session import router as session_router
from .turns import router as turns_router

router = APIRouter()
router.include_router(catalog_router)
router.include_router(turns_router)
router.include_router(session_router)
