# auth_service/api/v1/router.py
from fastapi import APIRouter

from auth_service.api.v1 import auth, health, jobs

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(jobs.router, prefix="/jobs", tags=["jobs"])
