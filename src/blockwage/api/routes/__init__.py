"""API routes."""

from blockwage.api.routes.health import router as health_router
from blockwage.api.routes.salary import router as salary_router

__all__ = ["health_router", "salary_router"]
