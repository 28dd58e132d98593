from fastapi import APIRouter

from app.api.api_v1.endpoints import booking, payments, timeslots

api_router = APIRouter()

# Health check endpoint for the API
@api_router.get("/health")
async def api_health_check():
    return {"success": True, "message": "healthy", "data": {"status": "healthy", "api_version": "v1"}}

# Include all endpoint routers
api_router.include_router(booking.router, prefix="/bookings", tags=["bookings"])
api_router.include_router(timeslots.router, prefix="/timeslots", tags=["timeslots"])
api_router.include_router(payments.router, prefix="/payments", tags=["payments"])
