"""
API v1 router initialization and setup.
"""
from fastapi import APIRouter
from .endpoints import webhooks, models, jobs, events

api_router = APIRouter()

api_router.include_router(
    webhooks.router,
    tags=["webhooks"]
)

api_router.include_router(
    models.router,
    prefix="/models",
    tags=["models"]
)

api_router.include_router(
    jobs.router,
    prefix="/jobs",
    tags=["jobs"]
)

api_router.include_router(
    events.router,
    prefix="/events",
    tags=["events"]
)
