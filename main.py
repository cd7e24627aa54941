# main.py
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from api.router import router as api_router
from apps.lectures import init_redis_connection, close_redis_connection, redis_client
from apps.lectures.config import get_lectures_settings
from apps.lectures.db import AsyncSessionLocal, init_lectures_db
from apps.lectures.pipeline import build_pipeline
from common.utils.logging_config import setup_logging

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Lecture Search API", version="1.0.0")

# Get settings
settings = get_lectures_settings()

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
    allow_methods=settings.CORS_ALLOW_METHODS,
    allow_headers=settings.CORS_ALLOW_HEADERS,
)

# Custom middleware to add security headers
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        return response

app.add_middleware(SecurityHeadersMiddleware)

@app.on_event("startup")
async def startup_event():
    """Initialize database, Redis and the background pipeline on startup"""
    await init_lectures_db()
    if not await init_redis_connection():
        logger.warning("Redis is unreachable; uploads and the redis task backend will fail until it recovers")
    app.state.lectures = build_pipeline(settings, AsyncSessionLocal, redis_client)
    await app.state.lectures.start()

@app.on_event("shutdown")
async def shutdown_event():
    pipeline = getattr(app.state, "lectures", None)
    if pipeline is not None:
        await pipeline.stop()
    await close_redis_connection()

app.include_router(api_router)
