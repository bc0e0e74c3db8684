"""
API v1 Router Module

All v1 endpoints are prefixed with /api/v1/

- POST /api/v1/events - inbound messaging events
- GET /api/v1/metrics - Prometheus metrics
"""

from fastapi import APIRouter

from src.api.v1.events import router as events_router
from src.api.v1.metrics import router as metrics_router

# Main v1 router
api_v1_router = APIRouter(prefix="/api/v1")

api_v1_router.include_router(events_router, prefix="/events", tags=["events"])
api_v1_router.include_router(metrics_router, tags=["metrics"])
