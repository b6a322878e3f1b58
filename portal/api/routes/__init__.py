"""
API Routes - Combines all route modules into single router.
"""

from fastapi import APIRouter

from portal.api.routes.auth_routes import router as auth_router
from portal.api.routes.prn_range_routes import super_admin_router, placement_officer_router
from portal.api.routes.eligibility_routes import router as eligibility_router
from portal.api.routes.reset_routes import router as reset_router
from portal.api.routes.activity_log_routes import router as activity_log_router

# Main API router
api_router = APIRouter()

# Include all sub-routers
api_router.include_router(auth_router)
api_router.include_router(super_admin_router)
api_router.include_router(placement_officer_router)
api_router.include_router(eligibility_router)
api_router.include_router(reset_router)
api_router.include_router(activity_log_router)
