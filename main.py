"""
Main application entry point for the Contacts API.

This module initializes the FastAPI application, sets up logging and
middleware, configures CORS, initializes the rate limiter with a Redis
backend, mounts uploaded photos and includes routers for authentication,
contacts and administration.
"""

import logging
import time
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from fastapi_limiter import FastAPILimiter
import redis.asyncio as redis
from fakeredis.aioredis import FakeRedis
from redis.exceptions import RedisError

from app.database import engine
from app import admin, contacts, models
from app.auth import router as auth_router
from app.core import configure_logging, get_settings
from app.responses import register_exception_handlers
from app.storage import URL_PREFIX

configure_logging()
logger = logging.getLogger("contacts_api")

# Create tables (for development only)
models.Base.metadata.create_all(bind=engine)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Initialize the rate limiter with the Redis backend.

    Falls back to FakeRedis if Redis is unavailable (e.g., during tests
    or offline development).
    """
    redis_client = redis.from_url(
        settings.REDIS_URL, encoding="utf-8", decode_responses=True
    )
    try:
        await FastAPILimiter.init(redis_client)
    except (RedisError, OSError):
        logger.warning("Redis unavailable at %s, using in-process limiter", settings.REDIS_URL)
        await FastAPILimiter.init(FakeRedis(decode_responses=True))
    logger.info("Contacts API started")
    yield
    await FastAPILimiter.close()


# Initialize FastAPI application
app = FastAPI(title="Contacts API", lifespan=lifespan)

# Configure CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log method, path, status and duration of every request."""
    started = time.perf_counter()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        return response
    finally:
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            "%s %s %d %.1fms",
            request.method,
            request.url.path,
            status_code,
            elapsed_ms,
        )


register_exception_handlers(app)

# Serve uploaded contact photos
upload_dir = Path(settings.UPLOAD_DIR)
upload_dir.mkdir(parents=True, exist_ok=True)
app.mount(URL_PREFIX, StaticFiles(directory=upload_dir), name="uploads")

# Include routers for application areas
app.include_router(auth_router)
app.include_router(contacts.router)
app.include_router(admin.router)


@app.get("/")
def root():
    """
    Root endpoint for the API.

    Returns a simple JSON message directing users to the Swagger UI.

    Returns:
        dict: JSON message with information about the API
    """
    return {"msg": "Contacts API. Visit /docs for Swagger UI"}
