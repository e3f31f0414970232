from fastapi import APIRouter

from datahub.api import data, search

api_router = APIRouter()


@api_router.get("/health", tags=["health"])
def api_health_check():
    """Health check endpoint for monitoring and load balancers."""
    return {"status": "ok", "service": "api"}


api_router.include_router(data.router, prefix="/data", tags=["data"])
api_router.include_router(search.router, prefix="/search", tags=["search"])
