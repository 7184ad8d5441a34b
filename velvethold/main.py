"""
VelvetHold Backend - FastAPI Application

Main entry point for the date request and deposit API.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager

from velvethold.routers import auth, requests, deposits, cron, webhooks
from velvethold.config import get_settings
from velvethold.exceptions import DateRequestError

logging.basicConfig(
    level=get_settings().log_level,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("VelvetHold API starting up")
    yield
    logger.info("VelvetHold API shutting down")


app = FastAPI(
    title="VelvetHold API",
    description="""
    Date requests screened by a refundable deposit.

    ## Features
    - Requesters send date requests and pay the invitee's deposit
    - Invitees approve or decline; declined and expired requests are refunded
    - Both parties confirm date details before the deposit is released
    - Scheduled sweeps expire stale requests and release confirmed deposits
    """,
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DateRequestError)
async def date_request_error_handler(request: Request, exc: DateRequestError):
    """Map lifecycle errors to HTTP responses."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# Register routers
app.include_router(auth.router)
app.include_router(requests.router)
app.include_router(deposits.router)
app.include_router(cron.router)
app.include_router(webhooks.router)


@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "VelvetHold API",
        "version": "1.0.0"
    }


@app.get("/health")
async def health_check():
    """Detailed health check."""
    settings = get_settings()

    return {
        "status": "healthy",
        "supabase_configured": bool(settings.supabase_url and settings.supabase_service_key),
        "stripe_configured": bool(settings.stripe_secret_key),
        "request_expiry_hours": settings.request_expiry_hours
    }
