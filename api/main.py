"""
FastAPI application initialization
"""

from fastapi import FastAPI
from api.routes import health, sync
from api.dependencies import scheduler
from api.middleware import RequestContextMiddleware
from core.config import settings
from core.logging import setup_logging
import logging

setup_logging()

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Card Harvest API",
    description="Catalog sync and health for the trading-card harvester",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(RequestContextMiddleware)

# Include routers
app.include_router(health.router)
app.include_router(sync.router)


@app.on_event("startup")
async def startup_event():
    """Application startup event"""
    logger.info("Starting Card Harvest API")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Store backend: {settings.STORE_BACKEND}")

    if settings.SCHEDULER_ENABLED:
        scheduler.start()


@app.on_event("shutdown")
async def shutdown_event():
    """Application shutdown event"""
    logger.info("Shutting down Card Harvest API")
    await scheduler.stop()


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Card Harvest API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "sync": "/sync/tcgcsv"
        }
    }


def serve():
    """Run the API with uvicorn on API_HOST:API_PORT"""
    import uvicorn
    uvicorn.run(app, host=settings.API_HOST, port=settings.API_PORT)


if __name__ == "__main__":
    serve()
