"""
mailauth.api.v1.router - API v1 Router

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter

from mailauth.api.v1.endpoints import oauth

api_router = APIRouter()

# Include endpoint routers
api_router.include_router(oauth.router, prefix="/oauth", tags=["oauth"])
