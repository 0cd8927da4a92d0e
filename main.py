"""
Event-day Guestbook - FastAPI Backend
Main application entry point
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from guestbook.core.config import settings
from guestbook.core.db import engine, Base
from guestbook.core.exceptions import GuestbookError
from guestbook.api import routes_admin, routes_checkin, routes_public, routes_redeem, routes_seating, ws
from guestbook.utils.responses import error_response

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management"""
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created")
    yield
    logger.info("Application shutdown")

app = FastAPI(
    title="Event-day Guestbook",
    description="Guest check-in, seating and benefit redemption for event venues",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.exception_handler(GuestbookError)
async def guestbook_error_handler(request: Request, exc: GuestbookError):
    """Rejections are expected outcomes; only retryable storage faults are errors"""
    if exc.retryable:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code} {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.code} {exc.message}")
    return error_response(status_code=exc.status_code, **exc.to_dict())

# Include routers
app.include_router(routes_public.router, tags=["public"])
app.include_router(routes_checkin.router, prefix="/check-in", tags=["check-in"])
app.include_router(routes_seating.router, prefix="/seating", tags=["seating"])
app.include_router(routes_redeem.router, prefix="/redeem", tags=["redeem"])
app.include_router(routes_admin.router, prefix="/admin", tags=["admin"])
app.include_router(ws.router, prefix="/ws", tags=["websocket"])

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host="127.0.0.1",
        port=8000,
        reload=True
    )
