"""
AcademicAlly — Main API Router

Aggregates all sub-routers under a single prefix so that
``academically.main`` can mount the entire API surface with one
``include_router`` call.
"""

from fastapi import APIRouter

from academically.api import matching, users

router = APIRouter()

router.include_router(users.router, prefix="/users", tags=["Users"])
router.include_router(matching.router, prefix="/match", tags=["Matching"])
