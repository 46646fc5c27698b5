"""
Main API Router
Aggregates all API endpoints for v1
"""

from fastapi import APIRouter
from adoption_insights.api.v1.endpoints import events, health

api_router = APIRouter()

api_router.include_router(events.router, prefix="/events", tags=["events"])
api_router.include_router(health.router, prefix="/health", tags=["health"])
