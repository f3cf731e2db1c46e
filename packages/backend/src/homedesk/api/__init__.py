"""API route aggregation.

All routers registered here get mounted in main.py under /api/v1.

Learn: Each router owns one resource family. Tags group them in the
OpenAPI docs at /docs.
"""

from fastapi import APIRouter

from homedesk.api.automations import router as automations_router
from homedesk.api.businesses import router as businesses_router
from homedesk.api.conversations import router as conversations_router
from homedesk.api.health import router as health_router
from homedesk.api.jobs import router as jobs_router

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(health_router, tags=["health"])
api_router.include_router(businesses_router, tags=["businesses", "contacts", "reviews"])
api_router.include_router(conversations_router, tags=["conversations", "messages"])
api_router.include_router(jobs_router, tags=["jobs"])
api_router.include_router(automations_router, tags=["automations"])
