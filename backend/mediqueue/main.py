"""
MediQueue - same-day token queues for clinical consultations

Main FastAPI application entry point.
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import get_settings
from .database import Database
from .errors import QueueError
from .routers import queue_router
from .services.queue_service import QueueService

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)
logging.getLogger("pymongo").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    logger.info("Starting %s v%s (store: %s)", settings.APP_NAME, settings.APP_VERSION, settings.STORE_BACKEND)
    if settings.STORE_BACKEND == "mongo":
        await Database.connect()

    if getattr(app.state, "queue_service", None) is None:
        app.state.queue_service = QueueService.from_settings()

    yield

    # Shutdown
    await Database.disconnect()
    logger.info("Application shutdown complete")


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    lifespan=lifespan
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"]
)


@app.exception_handler(QueueError)
async def queue_error_handler(request: Request, exc: QueueError):
    """Translate queue errors into their HTTP status with a uniform body."""
    if exc.retryable:
        logger.info("%s %s: %s", request.method, request.url.path, exc.message)
    else:
        logger.warning("%s %s: %s", request.method, request.url.path, exc.message)

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "detail": exc.message,
            "error": type(exc).__name__,
            "retryable": exc.retryable,
            **exc.details
        }
    )


# Include routers
app.include_router(queue_router)


@app.get("/", tags=["Health"])
async def root():
    """Root endpoint - health check."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "healthy",
        "docs": "/docs"
    }


@app.get("/health", tags=["Health"])
async def health_check():
    """Detailed health check."""
    return {
        "status": "healthy",
        "store": settings.STORE_BACKEND,
        "database": "connected" if Database.client else "disconnected",
        "version": settings.APP_VERSION
    }


# Entry point for running directly
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "mediqueue.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG
    )
