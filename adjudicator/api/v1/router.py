from fastapi import APIRouter

from adjudicator.api.v1.endpoints import claims

# Create API router
api_router = APIRouter()

api_router.include_router(claims.router, prefix="/claims", tags=["Claims"])

__all__ = ["api_router"]
