"""API v1 router aggregating all endpoints."""

from fastapi import APIRouter

from app.api.v1 import booking, tenants

api_router = APIRouter()

api_router.include_router(tenants.router, prefix="/tenants", tags=["tenants"])
api_router.include_router(booking.router, prefix="/booking", tags=["booking"])
