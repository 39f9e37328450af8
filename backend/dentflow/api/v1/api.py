"""API v1 router configuration."""

from fastapi import APIRouter

# Import endpoint routers
from dentflow.api.v1.endpoints import admin, audit_logs, patients

# Create API v1 router
api_router = APIRouter()

# Include endpoint routers
api_router.include_router(
    patients.router,
    tags=["Patients"],
)
api_router.include_router(
    audit_logs.router,
    tags=["Audit"],
)
api_router.include_router(
    admin.router,
    tags=["Admin"],
)


# Health check for API v1
@api_router.get("/health", tags=["Health"])
async def api_health() -> dict[str, str]:
    """API v1 health check."""
    return {
        "status": "healthy",
        "api_version": "v1",
    }
