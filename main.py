from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging

from app.core.config import settings
from app.core.errors import register_error_handlers
from app.api.api_v1.api import api_router
from app.database import init_db

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Library Seat Booking API",
    description="Seat booking and payment reconciliation backend for study libraries",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# CORS middleware - must be added before any routes
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
)

register_error_handlers(app)

# Include API router
app.include_router(api_router, prefix="/api/v1")

@app.on_event("startup")
async def startup_event():
    """Create database tables on startup"""
    try:
        init_db()
        logger.info("Database initialization completed")
    except Exception as e:
        # Let the app start anyway; requests will surface the database error
        logger.error(f"Database initialization failed: {e}")

@app.get("/")
async def root():
    return {
        "message": "Library Seat Booking API",
        "version": "1.0.0",
        "docs": "/docs",
        "endpoints": {
            "bookings": "/api/v1/bookings",
            "timeslots": "/api/v1/timeslots",
            "payments": "/api/v1/payments",
            "health": "/health",
        }
    }

@app.get("/health")
async def health_check():
    return {"success": True, "message": "healthy", "data": {"status": "healthy"}}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        port=8000,
        reload=True
    )
