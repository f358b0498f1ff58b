"""
Main FastAPI application.
This is the entry point for the backend server.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from barberbot.core.config import settings
from barberbot.core.errors import NotFoundOrUnauthorized, StoreError, StoreWriteFailure, TransportFailure
from barberbot.db.database import get_engine, init_db
from barberbot.api.endpoints import auth, chat, realtime

# Configure logging
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    """
    logger.info("Environment: %s", settings.ENVIRONMENT)
    await init_db()
    logger.info("Database initialized")

    yield

    await get_engine().dispose()
    logger.info("Shutting down...")


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.VERSION,
    description="Barbershop chat assistant backend",
    lifespan=lifespan
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

STORE_ERROR_STATUS = {
    NotFoundOrUnauthorized: status.HTTP_404_NOT_FOUND,
    StoreWriteFailure: status.HTTP_500_INTERNAL_SERVER_ERROR,
    TransportFailure: status.HTTP_503_SERVICE_UNAVAILABLE,
}


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    status_code = STORE_ERROR_STATUS.get(type(exc), status.HTTP_500_INTERNAL_SERVER_ERROR)
    if status_code >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc)
    return JSONResponse(status_code=status_code, content={"detail": str(exc) or type(exc).__name__})


# Include routers
app.include_router(auth.router)
app.include_router(chat.router)
app.include_router(realtime.router)


@app.get("/")
async def root():
    """Root endpoint - health check"""
    return {
        "message": settings.APP_NAME,
        "version": settings.VERSION,
        "status": "running"
    }


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy"}
